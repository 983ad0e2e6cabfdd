"""Verifier errors and the abstract state used while checking bytecode."""

from __future__ import annotations

import enum

from quantumvm.types import TypeTag

MAX_STACK_DEPTH = 1024


class VerifierError(Exception):
    """Base class for every problem the bytecode verifier reports."""


class TypeMismatchError(VerifierError):
    """A value of one type was found where another was required."""

    def __init__(self, expected: str, got: str) -> None:
        super().__init__(f"Type mismatch: expected {expected}, got {got}")
        self.expected = expected
        self.got = got


class StackUnderflowError(VerifierError):
    """An instruction needed more values than the stack holds."""

    def __init__(self, pc: int) -> None:
        super().__init__(f"Stack underflow at PC {pc}")
        self.pc = pc


class StackOverflowError(VerifierError):
    """The stack grew beyond its maximum depth."""

    def __init__(self, pc: int) -> None:
        super().__init__(f"Stack overflow at PC {pc}")
        self.pc = pc


class InvalidLocalIndexError(VerifierError):
    """A local variable index is out of range."""

    def __init__(self, index: int, pc: int) -> None:
        super().__init__(f"Invalid local index {index} at PC {pc}")
        self.index = index
        self.pc = pc


class InvalidBranchTargetError(VerifierError):
    """A branch lands outside the function's code."""

    def __init__(self, target: int, pc: int) -> None:
        super().__init__(f"Invalid branch target {target} at PC {pc}")
        self.target = target
        self.pc = pc


class ResourceSafetyViolation(VerifierError):
    """A linear value was used after being moved, or the structure is invalid."""

    def __init__(self, message: str) -> None:
        super().__init__(f"Resource safety violation: {message}")
        self.message = message


class BorrowCheckingError(VerifierError):
    """A local was used in a way its outstanding borrows forbid."""

    def __init__(self, message: str) -> None:
        super().__init__(f"Borrow checking error: {message}")
        self.message = message


class UnreachableCodeError(VerifierError):
    """Code that can never run was found."""

    def __init__(self, pc: int) -> None:
        super().__init__(f"Unreachable code at PC {pc}")
        self.pc = pc


class MissingReturnError(VerifierError):
    """A function can run off its end without returning."""

    def __init__(self) -> None:
        super().__init__("Missing return at end of function")


class InvalidSignatureError(VerifierError):
    """A function signature is malformed."""

    def __init__(self) -> None:
        super().__init__("Invalid function signature")


class AbstractStack:
    """A stack of types that mirrors the value stack during verification."""

    def __init__(self) -> None:
        self.types: list[TypeTag] = []
        self.max_depth = 0

    def __len__(self) -> int:
        return len(self.types)

    def push(self, tag: TypeTag) -> None:
        """Push a type; raise StackOverflowError past the maximum depth."""
        self.types.append(tag)
        self.max_depth = max(self.max_depth, len(self.types))
        if len(self.types) > MAX_STACK_DEPTH:
            raise StackOverflowError(pc=0)

    def pop(self) -> TypeTag:
        """Remove and return the top type."""
        if not self.types:
            raise StackUnderflowError(pc=0)
        return self.types.pop()

    def pop_expect(self, expected: TypeTag) -> None:
        """Pop the top type and raise TypeMismatchError unless it is ``expected``."""
        got = self.pop()
        if got != expected:
            raise TypeMismatchError(expected=str(expected), got=str(got))

    def peek(self) -> TypeTag:
        """The top type, left in place."""
        if not self.types:
            raise StackUnderflowError(pc=0)
        return self.types[-1]


class LocalState(enum.Enum):
    """Borrow state of one local variable."""

    AVAILABLE = "Available"
    MOVED = "Moved"
    BORROWED = "Borrowed"
    MUT_BORROWED = "MutBorrowed"


class BorrowChecker:
    """Tracks moves and borrows of a function's locals."""

    def __init__(self, num_locals: int) -> None:
        self.locals: list[LocalState] = [LocalState.AVAILABLE] * num_locals
        self.borrow_counts: list[int] = [0] * num_locals

    def _state(self, idx: int) -> LocalState:
        if not 0 <= idx < len(self.locals):
            raise InvalidLocalIndexError(index=idx, pc=0)
        return self.locals[idx]

    def move_local(self, idx: int) -> None:
        """Move a local out; it may not be used again."""
        state = self._state(idx)
        if state is LocalState.AVAILABLE:
            self.locals[idx] = LocalState.MOVED
        elif state is LocalState.MOVED:
            raise ResourceSafetyViolation(f"Local {idx} already moved")
        elif state is LocalState.BORROWED:
            raise BorrowCheckingError(f"Cannot move local {idx} while borrowed")
        else:
            raise BorrowCheckingError(f"Cannot move local {idx} while mutably borrowed")

    def copy_local(self, idx: int) -> None:
        """Check that a local may be copied."""
        state = self._state(idx)
        if state is LocalState.MOVED:
            raise ResourceSafetyViolation(f"Local {idx} already moved")
        if state is LocalState.MUT_BORROWED:
            raise BorrowCheckingError(f"Cannot copy local {idx} while mutably borrowed")

    def borrow_local(self, idx: int) -> None:
        """Take an immutable borrow of a local."""
        state = self._state(idx)
        if state is LocalState.AVAILABLE:
            self.locals[idx] = LocalState.BORROWED
            self.borrow_counts[idx] = 1
        elif state is LocalState.BORROWED:
            self.borrow_counts[idx] += 1
        elif state is LocalState.MOVED:
            raise ResourceSafetyViolation(f"Local {idx} already moved")
        else:
            raise BorrowCheckingError(f"Cannot borrow local {idx} while mutably borrowed")

    def mut_borrow_local(self, idx: int) -> None:
        """Take the single mutable borrow of a local."""
        state = self._state(idx)
        if state is LocalState.AVAILABLE:
            self.locals[idx] = LocalState.MUT_BORROWED
        elif state is LocalState.MOVED:
            raise ResourceSafetyViolation(f"Local {idx} already moved")
        elif state is LocalState.BORROWED:
            raise BorrowCheckingError(f"Cannot mutably borrow local {idx} while borrowed")
        else:
            raise BorrowCheckingError(f"Local {idx} already mutably borrowed")