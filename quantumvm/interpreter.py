"""Stack-based execution of bytecode functions with fuel metering."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from quantumvm.arithmetic import apply_binary, compare
from quantumvm.bytecode import Constant, ConstantKind, Function, Module
from quantumvm.instructions import Instruction, Opcode
from quantumvm.runtime import Runtime
from quantumvm.values import (
    DEFAULT_STACK_SIZE,
    AbortedError,
    ExecutionStack,
    InvalidConstantIndexError,
    InvalidFunctionIndexError,
    InvalidLocalError,
    OutOfFuelError,
    Value,
    ValueKind,
    VMRuntimeError,
    VMTypeMismatchError,
)

_BINARY_OPS = frozenset(
    {
        Opcode.ADD,
        Opcode.SUB,
        Opcode.MUL,
        Opcode.DIV,
        Opcode.MOD,
        Opcode.BIT_AND,
        Opcode.BIT_OR,
        Opcode.BIT_XOR,
    }
)

_COMPARISONS = frozenset(
    {Opcode.LT, Opcode.LE, Opcode.GT, Opcode.GE, Opcode.EQ, Opcode.NEQ}
)

_IMMEDIATE_LOADS: dict[Opcode, ValueKind] = {
    Opcode.LD_U8: ValueKind.U8,
    Opcode.LD_U16: ValueKind.U16,
    Opcode.LD_U32: ValueKind.U32,
    Opcode.LD_U64: ValueKind.U64,
}


@dataclass
class _CallFrame:
    """One active function call."""

    function_idx: int
    locals: list[Value]
    base_pointer: int
    pc: int = 0


@dataclass
class Interpreter:
    """Executes functions of a module against a fuel budget."""

    fuel_budget: int
    runtime: Runtime = field(default_factory=Runtime)

    def __post_init__(self) -> None:
        if self.fuel_budget < 0:
            raise ValueError(f"fuel budget must not be negative: {self.fuel_budget}")
        self._fuel = self.fuel_budget
        self._stack = ExecutionStack(DEFAULT_STACK_SIZE)
        self._call_stack: list[_CallFrame] = []
        self._module: Module | None = None

    def fuel_remaining(self) -> int:
        """Fuel left for further execution."""
        return self._fuel

    def execute_function(
        self, module: Module, function_idx: int, args: Sequence[Value]
    ) -> list[Value]:
        """Run a function of ``module`` with ``args`` and return its results."""
        self._module = module
        if not 0 <= function_idx < len(module.functions):
            raise InvalidFunctionIndexError(function_idx)
        function = module.functions[function_idx]

        args = list(args)
        expected = len(function.signature.parameters)
        if len(args) != expected:
            raise VMTypeMismatchError(
                expected=f"{expected} arguments", got=f"{len(args)} arguments"
            )
        for arg in args:
            self._stack.push(arg)

        self._call_stack.append(
            _CallFrame(
                function_idx=function_idx,
                locals=[Value(ValueKind.U8, 0)] * len(function.locals),
                base_pointer=len(self._stack) - expected,
            )
        )
        self._run(function)

        results = [self._stack.pop() for _ in function.signature.return_types]
        results.reverse()
        return results

    # ------------------------------------------------------------ execution

    def _frame(self) -> _CallFrame:
        if not self._call_stack:
            raise VMRuntimeError("No call frame")
        return self._call_stack[-1]

    def _run(self, function: Function) -> None:
        code = function.code
        while True:
            pc = self._frame().pc
            if not 0 <= pc < len(code):
                break
            instr = code[pc]
            self._charge_fuel(instr.fuel_cost())
            self._execute(instr)
            if not self._call_stack:
                break

    def _charge_fuel(self, cost: int) -> None:
        if self._fuel < cost:
            raise OutOfFuelError()
        self._fuel -= cost

    def _execute(self, instr: Instruction) -> None:
        """Execute one instruction and advance the program counter unless it jumped."""
        op = instr.opcode
        stack = self._stack

        if op is Opcode.POP:
            stack.pop()
        elif op is Opcode.DUP:
            stack.push(stack.peek())
        elif op is Opcode.SWAP:
            top = stack.pop()
            below = stack.pop()
            stack.push(top)
            stack.push(below)
        elif op is Opcode.LD_TRUE:
            stack.push(Value(ValueKind.BOOL, True))
        elif op is Opcode.LD_FALSE:
            stack.push(Value(ValueKind.BOOL, False))
        elif op in _IMMEDIATE_LOADS:
            stack.push(Value(_IMMEDIATE_LOADS[op], instr.operand))
        elif op is Opcode.LD_U128:
            constant = self._constant(instr.operand)
            if constant.kind is not ConstantKind.U128:
                raise VMTypeMismatchError(expected="U128", got=repr(constant))
            stack.push(Value(ValueKind.U128, constant.value))
        elif op in (Opcode.COPY_LOC, Opcode.MOVE_LOC):
            stack.push(self._local(instr.operand))
        elif op is Opcode.STORE_LOC:
            value = stack.pop()
            self._set_local(instr.operand, value)
        elif op in _BINARY_OPS:
            right = stack.pop()
            left = stack.pop()
            stack.push(apply_binary(op, left, right))
        elif op in _COMPARISONS:
            right = stack.pop()
            left = stack.pop()
            stack.push(Value(ValueKind.BOOL, compare(op, left, right)))
        elif op in (Opcode.AND, Opcode.OR):
            right = stack.pop()
            left = stack.pop()
            if left.kind is not ValueKind.BOOL or right.kind is not ValueKind.BOOL:
                raise VMTypeMismatchError(expected="Bool", got="other")
            result = (
                left.payload and right.payload
                if op is Opcode.AND
                else left.payload or right.payload
            )
            stack.push(Value(ValueKind.BOOL, result))
        elif op is Opcode.NOT:
            value = stack.pop()
            if value.kind is not ValueKind.BOOL:
                raise VMTypeMismatchError(expected="Bool", got="other")
            stack.push(Value(ValueKind.BOOL, not value.payload))
        elif op is Opcode.BRANCH:
            self._branch(instr.operand)
            return
        elif op in (Opcode.BRANCH_TRUE, Opcode.BRANCH_FALSE):
            value = stack.pop()
            wanted = op is Opcode.BRANCH_TRUE
            if value.kind is ValueKind.BOOL and value.payload is wanted:
                self._branch(instr.operand)
                return
        elif op is Opcode.RET:
            self._call_stack.pop()
            return
        elif op is Opcode.ABORT:
            raise AbortedError(0)
        elif op is Opcode.VEC_EMPTY:
            stack.push(Value(ValueKind.VECTOR, ()))
        elif op is Opcode.VEC_LEN:
            vec = self._pop_vector()
            stack.push(Value(ValueKind.U64, len(vec.payload)))
        elif op is Opcode.VEC_PUSH:
            elem = stack.pop()
            vec = self._pop_vector()
            stack.push(Value(ValueKind.VECTOR, vec.payload + (elem,)))
        elif op is Opcode.VEC_POP:
            vec = self._pop_vector()
            if not vec.payload:
                raise VMRuntimeError("Cannot pop from empty vector")
            stack.push(Value(ValueKind.VECTOR, vec.payload[:-1]))
            stack.push(vec.payload[-1])
        # Every other instruction has no effect at run time.

        if self._call_stack:
            self._call_stack[-1].pc += 1

    def _pop_vector(self) -> Value:
        value = self._stack.pop()
        if value.kind is not ValueKind.VECTOR:
            raise VMTypeMismatchError(expected="Vector", got=str(value))
        return value

    def _branch(self, offset: int) -> None:
        if not self._call_stack:
            raise VMRuntimeError("No call frame for branch")
        self._call_stack[-1].pc += offset

    def _local(self, idx: int) -> Value:
        frame = self._frame()
        if not 0 <= idx < len(frame.locals):
            raise InvalidLocalError(idx)
        return frame.locals[idx]

    def _set_local(self, idx: int, value: Value) -> None:
        frame = self._frame()
        if not 0 <= idx < len(frame.locals):
            raise InvalidLocalError(idx)
        frame.locals[idx] = value

    def _constant(self, idx: int) -> Constant:
        if self._module is None:
            raise VMRuntimeError("No current module")
        constants = self._module.constants
        if not 0 <= idx < len(constants):
            raise InvalidConstantIndexError(idx)
        return constants[idx]