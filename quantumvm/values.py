"""Runtime values, interpreter errors and the execution stack."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any

from quantumvm.types import (
    MutableReferenceType,
    ObjectID,
    Primitive,
    ReferenceType,
    SilverAddress,
    TypeTag,
    VectorType,
)

DEFAULT_STACK_SIZE = 1024
_U256_BYTES = 32


class InterpreterError(Exception):
    """Base class for every error raised while executing bytecode."""


class VMStackUnderflowError(InterpreterError):
    """A value was popped from an empty stack."""

    def __init__(self) -> None:
        super().__init__("Stack underflow")


class VMStackOverflowError(InterpreterError):
    """The stack grew beyond its maximum size."""

    def __init__(self) -> None:
        super().__init__("Stack overflow")


class InvalidLocalError(InterpreterError):
    """A local variable index is out of range."""

    def __init__(self, index: int) -> None:
        super().__init__(f"Invalid local index: {index}")
        self.index = index


class InvalidConstantIndexError(InterpreterError):
    """A constant pool index is out of range."""

    def __init__(self, index: int) -> None:
        super().__init__(f"Invalid constant index: {index}")
        self.index = index


class InvalidFunctionIndexError(InterpreterError):
    """A function index is out of range."""

    def __init__(self, index: int) -> None:
        super().__init__(f"Invalid function index: {index}")
        self.index = index


class VMTypeMismatchError(InterpreterError):
    """An operation received values of the wrong type."""

    def __init__(self, expected: str, got: str) -> None:
        super().__init__(f"Type mismatch: expected {expected}, got {got}")
        self.expected = expected
        self.got = got


class DivisionByZeroError(InterpreterError):
    """Division or modulo by zero."""

    def __init__(self) -> None:
        super().__init__("Division by zero")


class OutOfFuelError(InterpreterError):
    """Execution ran out of fuel."""

    def __init__(self) -> None:
        super().__init__("Out of fuel")


class AbortedError(InterpreterError):
    """Execution was aborted with an error code."""

    def __init__(self, code: int) -> None:
        super().__init__(f"Execution aborted with code {code}")
        self.code = code


class VMBranchTargetError(InterpreterError):
    """A branch target is invalid."""

    def __init__(self, target: int) -> None:
        super().__init__(f"Invalid branch target: {target}")
        self.target = target


class VMRuntimeError(InterpreterError):
    """Any other runtime failure."""

    def __init__(self, message: str) -> None:
        super().__init__(f"Runtime error: {message}")
        self.message = message


class ValueKind(enum.Enum):
    """The runtime kinds of value."""

    BOOL = "Bool"
    U8 = "U8"
    U16 = "U16"
    U32 = "U32"
    U64 = "U64"
    U128 = "U128"
    U256 = "U256"
    I8 = "I8"
    I16 = "I16"
    I32 = "I32"
    I64 = "I64"
    I128 = "I128"
    ADDRESS = "Address"
    OBJECT_ID = "ObjectID"
    BYTE_ARRAY = "ByteArray"
    VECTOR = "Vector"
    STRUCT = "Struct"
    REFERENCE = "Reference"
    MUTABLE_REFERENCE = "MutableReference"

    def __str__(self) -> str:
        return self.value


# (low, high) for every integer kind held as a Python int.
_INT_RANGES: dict[ValueKind, tuple[int, int]] = {
    ValueKind.U8: (0, 2**8 - 1),
    ValueKind.U16: (0, 2**16 - 1),
    ValueKind.U32: (0, 2**32 - 1),
    ValueKind.U64: (0, 2**64 - 1),
    ValueKind.U128: (0, 2**128 - 1),
    ValueKind.I8: (-(2**7), 2**7 - 1),
    ValueKind.I16: (-(2**15), 2**15 - 1),
    ValueKind.I32: (-(2**31), 2**31 - 1),
    ValueKind.I64: (-(2**63), 2**63 - 1),
    ValueKind.I128: (-(2**127), 2**127 - 1),
}

_SCALAR_TAGS: dict[ValueKind, Primitive] = {
    ValueKind.BOOL: Primitive.BOOL,
    ValueKind.U8: Primitive.U8,
    ValueKind.U16: Primitive.U16,
    ValueKind.U32: Primitive.U32,
    ValueKind.U64: Primitive.U64,
    ValueKind.U128: Primitive.U128,
    ValueKind.U256: Primitive.U256,
    ValueKind.I8: Primitive.I8,
    ValueKind.I16: Primitive.I16,
    ValueKind.I32: Primitive.I32,
    ValueKind.I64: Primitive.I64,
    ValueKind.I128: Primitive.I128,
    ValueKind.ADDRESS: Primitive.ADDRESS,
    ValueKind.OBJECT_ID: Primitive.OBJECT_ID,
}


def _require_bytes(payload: Any, what: str) -> bytes:
    if not isinstance(payload, (bytes, bytearray, memoryview)):
        raise TypeError(f"{what} payload must be bytes, got {type(payload).__name__}")
    return bytes(payload)


def _require_values(payload: Any, what: str) -> tuple[Value, ...]:
    if not isinstance(payload, (list, tuple)):
        raise TypeError(f"{what} payload must be a sequence of values")
    items = tuple(payload)
    for item in items:
        if not isinstance(item, Value):
            raise TypeError(f"{what} elements must be values, got {type(item).__name__}")
    return items


@dataclass(frozen=True)
class Value:
    """A value on the stack or in a local: a kind and its payload."""

    kind: ValueKind
    payload: Any

    def __post_init__(self) -> None:
        kind, payload = self.kind, self.payload
        if not isinstance(kind, ValueKind):
            raise TypeError(f"kind must be a ValueKind, got {type(kind).__name__}")
        if kind is ValueKind.BOOL:
            if not isinstance(payload, bool):
                raise TypeError("Bool payload must be a bool")
        elif kind in _INT_RANGES:
            if isinstance(payload, bool) or not isinstance(payload, int):
                raise TypeError(f"{kind} payload must be an integer")
            low, high = _INT_RANGES[kind]
            if not low <= payload <= high:
                raise ValueError(f"{kind} payload out of range: {payload}")
        elif kind is ValueKind.U256:
            data = _require_bytes(payload, "U256")
            if len(data) != _U256_BYTES:
                raise ValueError(f"U256 payload must be {_U256_BYTES} bytes, got {len(data)}")
            object.__setattr__(self, "payload", data)
        elif kind is ValueKind.ADDRESS:
            if not isinstance(payload, SilverAddress):
                raise TypeError("Address payload must be a SilverAddress")
        elif kind is ValueKind.OBJECT_ID:
            if not isinstance(payload, ObjectID):
                raise TypeError("ObjectID payload must be an ObjectID")
        elif kind is ValueKind.BYTE_ARRAY:
            object.__setattr__(self, "payload", _require_bytes(payload, "ByteArray"))
        elif kind in (ValueKind.VECTOR, ValueKind.STRUCT):
            object.__setattr__(self, "payload", _require_values(payload, str(kind)))
        elif not isinstance(payload, Value):
            raise TypeError(f"{kind} payload must be a value")

    def type_tag(self) -> TypeTag:
        """The type tag describing this value."""
        kind = self.kind
        if kind in _SCALAR_TAGS:
            return _SCALAR_TAGS[kind]
        if kind is ValueKind.BYTE_ARRAY:
            return VectorType(Primitive.U8)
        if kind is ValueKind.VECTOR:
            if self.payload:
                return VectorType(self.payload[0].type_tag())
            return VectorType(Primitive.U8)
        if kind is ValueKind.STRUCT:
            # Struct values carry no declaration, so no precise tag is known.
            return Primitive.U8
        if kind is ValueKind.REFERENCE:
            return ReferenceType(self.payload.type_tag())
        return MutableReferenceType(self.payload.type_tag())

    def __str__(self) -> str:
        return f"{self.kind}({self.payload})"


class ExecutionStack:
    """The operand stack, bounded in size."""

    def __init__(self, max_size: int = DEFAULT_STACK_SIZE) -> None:
        self.values: list[Value] = []
        self.max_size = max_size

    def __len__(self) -> int:
        return len(self.values)

    def push(self, value: Value) -> None:
        """Push a value; raise VMStackOverflowError when the stack is full."""
        if len(self.values) >= self.max_size:
            raise VMStackOverflowError()
        self.values.append(value)

    def pop(self) -> Value:
        """Remove and return the top value."""
        if not self.values:
            raise VMStackUnderflowError()
        return self.values.pop()

    def peek(self) -> Value:
        """The top value, left in place."""
        if not self.values:
            raise VMStackUnderflowError()
        return self.values[-1]