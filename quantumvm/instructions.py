"""The instruction set: opcodes, operands and fuel costs."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

from quantumvm.types import TypeTag


class Opcode(enum.Enum):
    """Every operation the VM knows."""

    # Stack
    POP = "Pop"
    DUP = "Dup"
    SWAP = "Swap"
    # Constants
    LD_TRUE = "LdTrue"
    LD_FALSE = "LdFalse"
    LD_U8 = "LdU8"
    LD_U16 = "LdU16"
    LD_U32 = "LdU32"
    LD_U64 = "LdU64"
    LD_U128 = "LdU128"
    LD_U256 = "LdU256"
    LD_ADDRESS = "LdAddress"
    LD_OBJECT_ID = "LdObjectID"
    LD_BYTE_ARRAY = "LdByteArray"
    # Locals
    COPY_LOC = "CopyLoc"
    MOVE_LOC = "MoveLoc"
    STORE_LOC = "StoreLoc"
    BORROW_LOC = "BorrowLoc"
    MUT_BORROW_LOC = "MutBorrowLoc"
    # Arithmetic and bitwise
    ADD = "Add"
    SUB = "Sub"
    MUL = "Mul"
    DIV = "Div"
    MOD = "Mod"
    BIT_AND = "BitAnd"
    BIT_OR = "BitOr"
    BIT_XOR = "BitXor"
    BIT_NOT = "BitNot"
    SHL = "Shl"
    SHR = "Shr"
    # Comparison
    LT = "Lt"
    LE = "Le"
    GT = "Gt"
    GE = "Ge"
    EQ = "Eq"
    NEQ = "Neq"
    # Logic
    AND = "And"
    OR = "Or"
    NOT = "Not"
    # Control flow
    BRANCH = "Branch"
    BRANCH_TRUE = "BranchTrue"
    BRANCH_FALSE = "BranchFalse"
    RET = "Ret"
    ABORT = "Abort"
    # Calls
    CALL = "Call"
    CALL_GENERIC = "CallGeneric"
    CALL_NATIVE = "CallNative"
    # Structs and references
    PACK = "Pack"
    UNPACK = "Unpack"
    BORROW_FIELD = "BorrowField"
    MUT_BORROW_FIELD = "MutBorrowField"
    READ_REF = "ReadRef"
    WRITE_REF = "WriteRef"
    RELEASE_REF = "ReleaseRef"
    # Vectors
    VEC_EMPTY = "VecEmpty"
    VEC_LEN = "VecLen"
    VEC_PUSH = "VecPush"
    VEC_POP = "VecPop"
    VEC_BORROW = "VecBorrow"
    VEC_MUT_BORROW = "VecMutBorrow"
    VEC_SWAP = "VecSwap"
    # Objects
    OBJECT_NEW = "ObjectNew"
    OBJECT_DELETE = "ObjectDelete"
    OBJECT_TRANSFER = "ObjectTransfer"
    OBJECT_SHARE = "ObjectShare"
    OBJECT_FREEZE = "ObjectFreeze"
    OBJECT_GET_ID = "ObjectGetID"
    OBJECT_EXISTS = "ObjectExists"
    OBJECT_BORROW = "ObjectBorrow"
    OBJECT_MUT_BORROW = "ObjectMutBorrow"
    # Cryptography
    CRYPTO_HASH_BLAKE3 = "CryptoHashBlake3"
    CRYPTO_VERIFY_SIGNATURE = "CryptoVerifySignature"
    CRYPTO_DERIVE_ADDRESS = "CryptoDeriveAddress"
    CRYPTO_RANDOM = "CryptoRandom"
    # Events
    EVENT_EMIT = "EventEmit"
    # Casts
    CAST_U8 = "CastU8"
    CAST_U16 = "CastU16"
    CAST_U32 = "CastU32"
    CAST_U64 = "CastU64"
    CAST_U128 = "CastU128"
    CAST_U256 = "CastU256"
    # Transaction context and fuel
    TX_SENDER = "TxSender"
    TX_TIMESTAMP = "TxTimestamp"
    TX_DIGEST = "TxDigest"
    FUEL_REMAINING = "FuelRemaining"
    FUEL_CHARGE = "FuelCharge"
    NOP = "Nop"
    # Debug
    DEBUG_PRINT = "DebugPrint"
    ASSERT = "Assert"

    def __str__(self) -> str:
        return self.value


_INT_RANGES = {
    "u8": (0, 0xFF),
    "u16": (0, 0xFFFF),
    "u32": (0, 0xFFFF_FFFF),
    "u64": (0, 0xFFFF_FFFF_FFFF_FFFF),
    "i32": (-(2**31), 2**31 - 1),
}

# Operand kind for every opcode that takes one; all others take none.
_OPERANDS: dict[Opcode, str] = {
    Opcode.LD_U8: "u8",
    Opcode.LD_U16: "u16",
    Opcode.LD_U32: "u32",
    Opcode.LD_U64: "u64",
    Opcode.LD_U128: "u16",
    Opcode.LD_U256: "u16",
    Opcode.LD_ADDRESS: "u16",
    Opcode.LD_OBJECT_ID: "u16",
    Opcode.LD_BYTE_ARRAY: "u16",
    Opcode.COPY_LOC: "u16",
    Opcode.MOVE_LOC: "u16",
    Opcode.STORE_LOC: "u16",
    Opcode.BORROW_LOC: "u16",
    Opcode.MUT_BORROW_LOC: "u16",
    Opcode.BRANCH: "i32",
    Opcode.BRANCH_TRUE: "i32",
    Opcode.BRANCH_FALSE: "i32",
    Opcode.CALL: "u16",
    Opcode.CALL_GENERIC: "call_generic",
    Opcode.CALL_NATIVE: "u16",
    Opcode.PACK: "u16",
    Opcode.UNPACK: "u16",
    Opcode.BORROW_FIELD: "u16",
    Opcode.MUT_BORROW_FIELD: "u16",
    Opcode.VEC_EMPTY: "type",
    Opcode.VEC_BORROW: "u64",
    Opcode.VEC_MUT_BORROW: "u64",
    Opcode.CRYPTO_RANDOM: "u16",
    Opcode.EVENT_EMIT: "type",
    Opcode.FUEL_CHARGE: "u64",
}

_FUEL: dict[Opcode, int] = {
    Opcode.POP: 1,
    Opcode.DUP: 1,
    Opcode.SWAP: 1,
    Opcode.LD_TRUE: 1,
    Opcode.LD_FALSE: 1,
    Opcode.LD_U8: 1,
    Opcode.LD_U16: 1,
    Opcode.LD_U32: 1,
    Opcode.LD_U64: 1,
    Opcode.LD_U128: 2,
    Opcode.LD_U256: 2,
    Opcode.LD_ADDRESS: 2,
    Opcode.LD_OBJECT_ID: 2,
    Opcode.LD_BYTE_ARRAY: 2,
    Opcode.COPY_LOC: 1,
    Opcode.MOVE_LOC: 1,
    Opcode.STORE_LOC: 1,
    Opcode.BORROW_LOC: 2,
    Opcode.MUT_BORROW_LOC: 2,
    Opcode.ADD: 1,
    Opcode.SUB: 1,
    Opcode.MUL: 2,
    Opcode.DIV: 5,
    Opcode.MOD: 5,
    Opcode.BIT_AND: 1,
    Opcode.BIT_OR: 1,
    Opcode.BIT_XOR: 1,
    Opcode.BIT_NOT: 1,
    Opcode.SHL: 1,
    Opcode.SHR: 1,
    Opcode.LT: 1,
    Opcode.LE: 1,
    Opcode.GT: 1,
    Opcode.GE: 1,
    Opcode.EQ: 1,
    Opcode.NEQ: 1,
    Opcode.AND: 1,
    Opcode.OR: 1,
    Opcode.NOT: 1,
    Opcode.BRANCH: 1,
    Opcode.BRANCH_TRUE: 1,
    Opcode.BRANCH_FALSE: 1,
    Opcode.RET: 1,
    Opcode.ABORT: 1,
    Opcode.CALL: 10,
    Opcode.CALL_GENERIC: 20,
    Opcode.CALL_NATIVE: 50,
    Opcode.PACK: 5,
    Opcode.UNPACK: 5,
    Opcode.BORROW_FIELD: 2,
    Opcode.MUT_BORROW_FIELD: 2,
    Opcode.READ_REF: 2,
    Opcode.WRITE_REF: 2,
    Opcode.RELEASE_REF: 1,
    Opcode.VEC_EMPTY: 2,
    Opcode.VEC_LEN: 1,
    Opcode.VEC_PUSH: 3,
    Opcode.VEC_POP: 3,
    Opcode.VEC_BORROW: 2,
    Opcode.VEC_MUT_BORROW: 2,
    Opcode.VEC_SWAP: 2,
    Opcode.OBJECT_NEW: 50,
    Opcode.OBJECT_DELETE: 20,
    Opcode.OBJECT_TRANSFER: 30,
    Opcode.OBJECT_SHARE: 40,
    Opcode.OBJECT_FREEZE: 40,
    Opcode.OBJECT_GET_ID: 2,
    Opcode.OBJECT_EXISTS: 10,
    Opcode.OBJECT_BORROW: 10,
    Opcode.OBJECT_MUT_BORROW: 10,
    Opcode.CRYPTO_HASH_BLAKE3: 100,
    Opcode.CRYPTO_VERIFY_SIGNATURE: 1000,
    Opcode.CRYPTO_DERIVE_ADDRESS: 100,
    Opcode.CRYPTO_RANDOM: 50,
    Opcode.EVENT_EMIT: 20,
    Opcode.CAST_U8: 1,
    Opcode.CAST_U16: 1,
    Opcode.CAST_U32: 1,
    Opcode.CAST_U64: 1,
    Opcode.CAST_U128: 1,
    Opcode.CAST_U256: 1,
    Opcode.TX_SENDER: 2,
    Opcode.TX_TIMESTAMP: 2,
    Opcode.TX_DIGEST: 2,
    Opcode.FUEL_REMAINING: 1,
    Opcode.FUEL_CHARGE: 1,
    Opcode.NOP: 0,
    Opcode.DEBUG_PRINT: 10,
    Opcode.ASSERT: 2,
}

_BRANCHES = frozenset({Opcode.BRANCH, Opcode.BRANCH_TRUE, Opcode.BRANCH_FALSE})
_TERMINALS = frozenset({Opcode.RET, Opcode.ABORT})


def _check_int(kind: str, value: Any, what: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{what} must be an integer, got {type(value).__name__}")
    low, high = _INT_RANGES[kind]
    if not low <= value <= high:
        raise ValueError(f"{what} out of range for {kind}: {value}")


def _check_type_tag(value: Any, what: str) -> None:
    if not isinstance(value, TypeTag):
        raise TypeError(f"{what} must be a type tag, got {type(value).__name__}")


@dataclass(frozen=True)
class CallGenericArgs:
    """Operand of a generic call: the callee and its type arguments."""

    module_idx: int
    function_idx: int
    type_args: tuple[TypeTag, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        _check_int("u16", self.module_idx, "module_idx")
        _check_int("u16", self.function_idx, "function_idx")
        args = tuple(self.type_args)
        for arg in args:
            _check_type_tag(arg, "type argument")
        object.__setattr__(self, "type_args", args)


@dataclass(frozen=True)
class Instruction:
    """One VM instruction: an opcode and, for some opcodes, an operand."""

    opcode: Opcode
    operand: Any = None

    def __post_init__(self) -> None:
        if not isinstance(self.opcode, Opcode):
            raise TypeError(f"opcode must be an Opcode, got {type(self.opcode).__name__}")
        kind = _OPERANDS.get(self.opcode)
        what = f"operand of {self.opcode}"
        if kind is None:
            if self.operand is not None:
                raise ValueError(f"{self.opcode} takes no operand")
        elif kind == "type":
            _check_type_tag(self.operand, what)
        elif kind == "call_generic":
            if not isinstance(self.operand, CallGenericArgs):
                raise TypeError(f"{what} must be CallGenericArgs")
        else:
            _check_int(kind, self.operand, what)

    def fuel_cost(self) -> int:
        """Fuel charged for executing this instruction."""
        return _FUEL[self.opcode]

    def is_branch(self) -> bool:
        """Whether this is one of the branch instructions."""
        return self.opcode in _BRANCHES

    def branch_offset(self) -> int | None:
        """The relative branch offset, or None for non-branch instructions."""
        return self.operand if self.is_branch() else None

    def is_terminal(self) -> bool:
        """Whether this instruction ends execution of the function."""
        return self.opcode in _TERMINALS

    def __str__(self) -> str:
        if self.operand is None:
            return str(self.opcode)
        return f"{self.opcode}({self.operand})"