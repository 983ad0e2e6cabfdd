"""Identifiers, bytecode versions and runtime type tags."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import ClassVar

ID_LENGTH = 64
_U16_MAX = 0xFFFF


def _check_u16(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer, got {type(value).__name__}")
    if not 0 <= value <= _U16_MAX:
        raise ValueError(f"{name} out of range for u16: {value}")


def _coerce_id_bytes(kind: str, raw: bytes | bytearray | memoryview) -> bytes:
    if not isinstance(raw, (bytes, bytearray, memoryview)):
        raise TypeError(f"{kind} must be built from bytes, got {type(raw).__name__}")
    data = bytes(raw)
    if len(data) != ID_LENGTH:
        raise ValueError(f"{kind} must be {ID_LENGTH} bytes, got {len(data)}")
    return data


@dataclass(frozen=True)
class ObjectID:
    """A 512-bit object identifier."""

    value: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", _coerce_id_bytes("ObjectID", self.value))

    def __str__(self) -> str:
        return self.value.hex()


@dataclass(frozen=True)
class SilverAddress:
    """A 512-bit account address."""

    value: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", _coerce_id_bytes("SilverAddress", self.value))

    def __str__(self) -> str:
        return self.value.hex()


@dataclass(frozen=True)
class BytecodeVersion:
    """Bytecode format version; a change of major version breaks compatibility."""

    major: int = 1
    minor: int = 0

    CURRENT: ClassVar[BytecodeVersion]

    def __post_init__(self) -> None:
        _check_u16("major", self.major)
        _check_u16("minor", self.minor)

    def is_compatible(self) -> bool:
        """Whether this version can run on the current VM."""
        return self.major == BytecodeVersion.CURRENT.major

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"


BytecodeVersion.CURRENT = BytecodeVersion(1, 0)


class Primitive(enum.Enum):
    """Type tags that carry no further information."""

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

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class VectorType:
    """A vector whose elements have type ``element``."""

    element: TypeTag

    def __str__(self) -> str:
        return f"Vector({self.element})"


@dataclass(frozen=True)
class StructType:
    """A struct declared in ``module`` of the package ``package``."""

    package: ObjectID
    module: str
    name: str
    type_params: tuple[TypeTag, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "type_params", tuple(self.type_params))

    def __str__(self) -> str:
        params = ", ".join(str(p) for p in self.type_params)
        suffix = f"<{params}>" if params else ""
        return f"Struct({self.module}::{self.name}{suffix})"


@dataclass(frozen=True)
class TypeParameterType:
    """A generic type parameter, referred to by position."""

    index: int

    def __post_init__(self) -> None:
        _check_u16("index", self.index)

    def __str__(self) -> str:
        return f"TypeParameter({self.index})"


@dataclass(frozen=True)
class ReferenceType:
    """An immutable reference to a value of type ``inner``."""

    inner: TypeTag

    def __str__(self) -> str:
        return f"Reference({self.inner})"


@dataclass(frozen=True)
class MutableReferenceType:
    """A mutable reference to a value of type ``inner``."""

    inner: TypeTag

    def __str__(self) -> str:
        return f"MutableReference({self.inner})"


TypeTag = (
    Primitive
    | VectorType
    | StructType
    | TypeParameterType
    | ReferenceType
    | MutableReferenceType
)

_INTEGER_TYPES = frozenset(
    {
        Primitive.U8,
        Primitive.U16,
        Primitive.U32,
        Primitive.U64,
        Primitive.U128,
        Primitive.U256,
        Primitive.I8,
        Primitive.I16,
        Primitive.I32,
        Primitive.I64,
        Primitive.I128,
    }
)


def is_integer_type(tag: TypeTag) -> bool:
    """Whether ``tag`` is one of the signed or unsigned integer types."""
    return isinstance(tag, Primitive) and tag in _INTEGER_TYPES