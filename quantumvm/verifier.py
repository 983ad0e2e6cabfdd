"""Static verification of functions, modules and packages."""

from __future__ import annotations

from quantumvm.bytecode import Bytecode, BytecodeError, Function, Module
from quantumvm.checks import (
    AbstractStack,
    BorrowChecker,
    InvalidLocalIndexError,
    MissingReturnError,
    ResourceSafetyViolation,
    TypeMismatchError,
)
from quantumvm.instructions import Instruction, Opcode
from quantumvm.types import (
    MutableReferenceType,
    Primitive,
    ReferenceType,
    TypeTag,
    VectorType,
    is_integer_type,
)

_CONSTANT_TYPES: dict[Opcode, TypeTag] = {
    Opcode.LD_TRUE: Primitive.BOOL,
    Opcode.LD_FALSE: Primitive.BOOL,
    Opcode.LD_U8: Primitive.U8,
    Opcode.LD_U16: Primitive.U16,
    Opcode.LD_U32: Primitive.U32,
    Opcode.LD_U64: Primitive.U64,
    Opcode.LD_U128: Primitive.U128,
    Opcode.LD_U256: Primitive.U256,
    Opcode.LD_ADDRESS: Primitive.ADDRESS,
    Opcode.LD_OBJECT_ID: Primitive.OBJECT_ID,
    Opcode.LD_BYTE_ARRAY: VectorType(Primitive.U8),
}

_BINARY_INTEGER_OPS = frozenset(
    {
        Opcode.ADD,
        Opcode.SUB,
        Opcode.MUL,
        Opcode.DIV,
        Opcode.MOD,
        Opcode.BIT_AND,
        Opcode.BIT_OR,
        Opcode.BIT_XOR,
        Opcode.SHL,
        Opcode.SHR,
    }
)

_COMPARISONS = frozenset(
    {Opcode.LT, Opcode.LE, Opcode.GT, Opcode.GE, Opcode.EQ, Opcode.NEQ}
)


class _FunctionVerifier:
    """Walks a function's reachable code, tracking types and borrows."""

    def __init__(self, function: Function) -> None:
        self.function = function
        self.stack = AbstractStack()
        self.borrow_checker = BorrowChecker(
            len(function.signature.parameters) + len(function.locals)
        )
        self.reachable: set[int] = set()

    def verify(self) -> None:
        for param in self.function.signature.parameters:
            self.stack.push(param)
        self.reachable.add(0)
        self._verify_instructions()
        self._verify_returns()

    def _verify_instructions(self) -> None:
        for pc, instr in enumerate(self.function.code):
            if pc not in self.reachable:
                continue
            self._verify_instruction(instr)
            offset = instr.branch_offset()
            if offset is not None:
                self.reachable.add(pc + offset)
            if not instr.is_terminal():
                self.reachable.add(pc + 1)

    def _verify_instruction(self, instr: Instruction) -> None:
        op = instr.opcode
        stack = self.stack

        if op is Opcode.POP:
            stack.pop()
        elif op is Opcode.DUP:
            stack.push(stack.peek())
        elif op is Opcode.SWAP:
            first = stack.pop()
            second = stack.pop()
            stack.push(first)
            stack.push(second)
        elif op in _CONSTANT_TYPES:
            stack.push(_CONSTANT_TYPES[op])
        elif op is Opcode.COPY_LOC:
            self.borrow_checker.copy_local(instr.operand)
            stack.push(self._local_type(instr.operand))
        elif op is Opcode.MOVE_LOC:
            self.borrow_checker.move_local(instr.operand)
            stack.push(self._local_type(instr.operand))
        elif op is Opcode.STORE_LOC:
            tag = stack.pop()
            local_tag = self._local_type(instr.operand)
            if tag != local_tag:
                raise TypeMismatchError(expected=str(local_tag), got=str(tag))
        elif op is Opcode.BORROW_LOC:
            self.borrow_checker.borrow_local(instr.operand)
            stack.push(ReferenceType(self._local_type(instr.operand)))
        elif op is Opcode.MUT_BORROW_LOC:
            self.borrow_checker.mut_borrow_local(instr.operand)
            stack.push(MutableReferenceType(self._local_type(instr.operand)))
        elif op in _BINARY_INTEGER_OPS:
            first = stack.pop()
            second = stack.pop()
            if first != second or not is_integer_type(first):
                raise TypeMismatchError(expected="integer types", got=f"{first}, {second}")
            stack.push(first)
        elif op is Opcode.BIT_NOT:
            tag = stack.pop()
            if not is_integer_type(tag):
                raise TypeMismatchError(expected="integer type", got=str(tag))
            stack.push(tag)
        elif op in _COMPARISONS:
            first = stack.pop()
            second = stack.pop()
            if first != second:
                raise TypeMismatchError(expected=str(first), got=str(second))
            stack.push(Primitive.BOOL)
        elif op in (Opcode.AND, Opcode.OR):
            stack.pop_expect(Primitive.BOOL)
            stack.pop_expect(Primitive.BOOL)
            stack.push(Primitive.BOOL)
        elif op is Opcode.NOT:
            stack.pop_expect(Primitive.BOOL)
            stack.push(Primitive.BOOL)
        elif op in (Opcode.BRANCH_TRUE, Opcode.BRANCH_FALSE):
            stack.pop_expect(Primitive.BOOL)
        elif op is Opcode.RET:
            for ret in reversed(self.function.signature.return_types):
                stack.pop_expect(ret)
        # Branch, Abort and the remaining instructions have no checked stack effect.

    def _local_type(self, idx: int) -> TypeTag:
        params = self.function.signature.parameters
        if idx < len(params):
            return params[idx]
        local_idx = idx - len(params)
        if local_idx < len(self.function.locals):
            return self.function.locals[local_idx]
        raise InvalidLocalIndexError(index=idx, pc=0)

    def _verify_returns(self) -> None:
        last = len(self.function.code) - 1
        if last < 0:
            return
        if last in self.reachable and not self.function.code[last].is_terminal():
            raise MissingReturnError()


def verify_function(function: Function) -> None:
    """Check a function's structure, types and borrows; raise VerifierError on failure."""
    try:
        function.validate()
    except BytecodeError as exc:
        raise ResourceSafetyViolation(str(exc)) from exc
    _FunctionVerifier(function).verify()


def verify_module(module: Module) -> None:
    """Check a module and every function in it."""
    try:
        module.validate()
    except BytecodeError as exc:
        raise ResourceSafetyViolation(str(exc)) from exc
    for function in module.functions:
        verify_function(function)


def verify_bytecode(bytecode: Bytecode) -> None:
    """Check a whole package and every module in it."""
    try:
        bytecode.validate()
    except BytecodeError as exc:
        raise ResourceSafetyViolation(str(exc)) from exc
    for module in bytecode.modules:
        verify_module(module)