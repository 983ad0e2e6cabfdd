"""Arithmetic, bitwise and comparison operations on runtime values."""

from __future__ import annotations

import operator
from typing import Callable

from quantumvm.instructions import Opcode
from quantumvm.values import (
    DivisionByZeroError,
    Value,
    ValueKind,
    VMTypeMismatchError,
)

_BITS: dict[ValueKind, int] = {
    ValueKind.U8: 8,
    ValueKind.U16: 16,
    ValueKind.U32: 32,
    ValueKind.U64: 64,
    ValueKind.U128: 128,
}

_WRAPPING: dict[Opcode, Callable[[int, int], int]] = {
    Opcode.ADD: operator.add,
    Opcode.SUB: operator.sub,
    Opcode.MUL: operator.mul,
}

_BITWISE: dict[Opcode, Callable[[int, int], int]] = {
    Opcode.BIT_AND: operator.and_,
    Opcode.BIT_OR: operator.or_,
    Opcode.BIT_XOR: operator.xor,
}

_ORDERINGS: dict[Opcode, Callable[[int, int], bool]] = {
    Opcode.LT: operator.lt,
    Opcode.LE: operator.le,
    Opcode.GT: operator.gt,
    Opcode.GE: operator.ge,
}

_WRAPPING_KINDS = frozenset(_BITS)
_NARROW_KINDS = frozenset({ValueKind.U8, ValueKind.U64})


def _same_kind(left: Value, right: Value, allowed: frozenset[ValueKind]) -> bool:
    return left.kind is right.kind and left.kind in allowed


def _mismatch() -> VMTypeMismatchError:
    return VMTypeMismatchError(expected="matching integer types", got="mismatched types")


def apply_binary(opcode: Opcode, left: Value, right: Value) -> Value:
    """Apply an arithmetic or bitwise opcode to two values of the same kind."""
    if opcode in _WRAPPING:
        if not _same_kind(left, right, _WRAPPING_KINDS):
            raise _mismatch()
        mask = (1 << _BITS[left.kind]) - 1
        return Value(left.kind, _WRAPPING[opcode](left.payload, right.payload) & mask)

    if opcode is Opcode.DIV:
        if not _same_kind(left, right, _NARROW_KINDS):
            raise _mismatch()
        if right.payload == 0:
            raise DivisionByZeroError()
        return Value(left.kind, left.payload // right.payload)

    if opcode is Opcode.MOD:
        if not (left.kind is ValueKind.U64 and right.kind is ValueKind.U64):
            raise VMTypeMismatchError(expected="U64", got="other")
        if right.payload == 0:
            raise DivisionByZeroError()
        return Value(ValueKind.U64, left.payload % right.payload)

    if opcode in _BITWISE:
        if not _same_kind(left, right, _NARROW_KINDS):
            raise _mismatch()
        return Value(left.kind, _BITWISE[opcode](left.payload, right.payload))

    raise ValueError(f"{opcode} is not a binary arithmetic operation")


def compare(opcode: Opcode, left: Value, right: Value) -> bool:
    """Evaluate a comparison opcode on two values."""
    if opcode is Opcode.EQ:
        return left == right
    if opcode is Opcode.NEQ:
        return left != right
    if opcode in _ORDERINGS:
        if not _same_kind(left, right, _NARROW_KINDS):
            raise VMTypeMismatchError(
                expected="matching comparable types", got="mismatched types"
            )
        return _ORDERINGS[opcode](left.payload, right.payload)
    raise ValueError(f"{opcode} is not a comparison")