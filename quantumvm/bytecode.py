"""Modules, functions, constant pools and compiled packages."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

import msgpack

from quantumvm.instructions import CallGenericArgs, Instruction, Opcode
from quantumvm.types import (
    BytecodeVersion,
    MutableReferenceType,
    ObjectID,
    Primitive,
    ReferenceType,
    SilverAddress,
    StructType,
    TypeParameterType,
    TypeTag,
    VectorType,
)

_U128_MAX = 2**128 - 1
_U128_BYTES = 16
_U256_BYTES = 32


class BytecodeError(Exception):
    """Raised when bytecode is malformed or cannot be (de)serialized."""


class ConstantKind(enum.Enum):
    """The kinds of entry a constant pool can hold."""

    U128 = "U128"
    U256 = "U256"
    ADDRESS = "Address"
    OBJECT_ID = "ObjectID"
    BYTE_ARRAY = "ByteArray"
    STRING = "String"


@dataclass(frozen=True)
class Constant:
    """A constant pool entry too large to be an instruction operand."""

    kind: ConstantKind
    value: Any

    def __post_init__(self) -> None:
        kind, value = self.kind, self.value
        if not isinstance(kind, ConstantKind):
            raise TypeError(f"kind must be a ConstantKind, got {type(kind).__name__}")
        if kind is ConstantKind.U128:
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError("U128 constant must be an integer")
            if not 0 <= value <= _U128_MAX:
                raise ValueError(f"U128 constant out of range: {value}")
        elif kind is ConstantKind.U256:
            if not isinstance(value, (bytes, bytearray, memoryview)):
                raise TypeError("U256 constant must be bytes")
            data = bytes(value)
            if len(data) != _U256_BYTES:
                raise ValueError(f"U256 constant must be {_U256_BYTES} bytes, got {len(data)}")
            object.__setattr__(self, "value", data)
        elif kind is ConstantKind.ADDRESS:
            if not isinstance(value, SilverAddress):
                raise TypeError("Address constant must be a SilverAddress")
        elif kind is ConstantKind.OBJECT_ID:
            if not isinstance(value, ObjectID):
                raise TypeError("ObjectID constant must be an ObjectID")
        elif kind is ConstantKind.BYTE_ARRAY:
            if not isinstance(value, (bytes, bytearray, memoryview)):
                raise TypeError("ByteArray constant must be bytes")
            object.__setattr__(self, "value", bytes(value))
        elif not isinstance(value, str):
            raise TypeError("String constant must be a str")


@dataclass
class FunctionSignature:
    """Type parameters, parameter types and return types of a function."""

    type_parameters: list[TypeTag] = field(default_factory=list)
    parameters: list[TypeTag] = field(default_factory=list)
    return_types: list[TypeTag] = field(default_factory=list)


@dataclass
class Function:
    """A function definition and its code."""

    name: str
    signature: FunctionSignature = field(default_factory=FunctionSignature)
    locals: list[TypeTag] = field(default_factory=list)
    code: list[Instruction] = field(default_factory=list)
    is_public: bool = False
    is_entry: bool = False

    def validate(self) -> None:
        """Raise BytecodeError if any branch lands outside the code."""
        code_len = len(self.code)
        for pc, instr in enumerate(self.code):
            offset = instr.branch_offset()
            if offset is None:
                continue
            target = pc + offset
            if not 0 <= target < code_len:
                raise BytecodeError(
                    f"Invalid branch at PC {pc}: target {target} "
                    f"out of bounds [0, {code_len})"
                )


@dataclass(frozen=True)
class StructAbilities:
    """What a struct's values may do: be copied, dropped, stored or used as keys."""

    has_copy: bool = False
    has_drop: bool = False
    has_store: bool = False
    has_key: bool = False


@dataclass
class StructDef:
    """A struct definition."""

    name: str
    type_parameters: list[TypeTag] = field(default_factory=list)
    fields: list[tuple[str, TypeTag]] = field(default_factory=list)
    abilities: StructAbilities = field(default_factory=StructAbilities)


@dataclass
class Module:
    """A named collection of constants, structs and functions."""

    name: str
    version: BytecodeVersion = BytecodeVersion.CURRENT
    constants: list[Constant] = field(default_factory=list)
    structs: list[StructDef] = field(default_factory=list)
    functions: list[Function] = field(default_factory=list)
    dependencies: list[ObjectID] = field(default_factory=list)

    def validate(self) -> None:
        """Raise BytecodeError if the version or any function is invalid."""
        if not self.version.is_compatible():
            raise BytecodeError(
                f"Incompatible bytecode version: {self.version.major}.{self.version.minor} "
                f"(expected {BytecodeVersion.CURRENT.major}.x)"
            )
        for idx, func in enumerate(self.functions):
            try:
                func.validate()
            except BytecodeError as exc:
                raise BytecodeError(f"Function {idx} ({func.name}): {exc}") from exc

    def find_function(self, name: str) -> tuple[int, Function] | None:
        """The index and definition of the first function called ``name``."""
        return next(
            ((idx, f) for idx, f in enumerate(self.functions) if f.name == name), None
        )

    def find_struct(self, name: str) -> tuple[int, StructDef] | None:
        """The index and definition of the first struct called ``name``."""
        return next(((idx, s) for idx, s in enumerate(self.structs) if s.name == name), None)


@dataclass
class PackageMetadata:
    """Descriptive information about a package."""

    name: str
    version: str = "0.1.0"
    author: str | None = None
    description: str | None = None


@dataclass
class Bytecode:
    """A compiled package: its identifier, metadata and modules."""

    package_id: ObjectID
    metadata: PackageMetadata
    modules: list[Module] = field(default_factory=list)

    def validate(self) -> None:
        """Raise BytecodeError if any module is invalid."""
        for idx, module in enumerate(self.modules):
            try:
                module.validate()
            except BytecodeError as exc:
                raise BytecodeError(f"Module {idx} ({module.name}): {exc}") from exc

    def serialize(self) -> bytes:
        """Encode the package in a compact binary form."""
        try:
            return msgpack.packb(_encode_bytecode(self), use_bin_type=True)
        except (TypeError, ValueError, OverflowError) as exc:
            raise BytecodeError(f"Serialization error: {exc}") from exc

    @classmethod
    def deserialize(cls, data: bytes) -> Bytecode:
        """Decode a package produced by :meth:`serialize`."""
        try:
            doc = msgpack.unpackb(bytes(data), raw=False)
            return _decode_bytecode(doc)
        except (
            ValueError,
            TypeError,
            KeyError,
            IndexError,
            msgpack.exceptions.UnpackException,
        ) as exc:
            raise BytecodeError(f"Deserialization error: {exc}") from exc

    def find_module(self, name: str) -> tuple[int, Module] | None:
        """The index and definition of the first module called ``name``."""
        return next(((idx, m) for idx, m in enumerate(self.modules) if m.name == name), None)

    def __str__(self) -> str:
        return (
            f"Bytecode {{ package: {self.metadata.name}, modules: {len(self.modules)}, "
            f"version: {self.metadata.version} }}"
        )


# ---------------------------------------------------------------- encoding


def _encode_type(tag: TypeTag) -> list[Any]:
    if isinstance(tag, Primitive):
        return ["P", tag.value]
    if isinstance(tag, VectorType):
        return ["V", _encode_type(tag.element)]
    if isinstance(tag, StructType):
        return [
            "S",
            tag.package.value,
            tag.module,
            tag.name,
            [_encode_type(p) for p in tag.type_params],
        ]
    if isinstance(tag, TypeParameterType):
        return ["T", tag.index]
    if isinstance(tag, ReferenceType):
        return ["R", _encode_type(tag.inner)]
    if isinstance(tag, MutableReferenceType):
        return ["M", _encode_type(tag.inner)]
    raise TypeError(f"not a type tag: {tag!r}")


def _encode_operand(operand: Any) -> Any:
    if operand is None or isinstance(operand, int):
        return operand
    if isinstance(operand, CallGenericArgs):
        return {
            "module_idx": operand.module_idx,
            "function_idx": operand.function_idx,
            "type_args": [_encode_type(t) for t in operand.type_args],
        }
    return _encode_type(operand)


def _encode_constant(constant: Constant) -> list[Any]:
    value = constant.value
    if constant.kind is ConstantKind.U128:
        payload: Any = value.to_bytes(_U128_BYTES, "big")
    elif constant.kind in (ConstantKind.ADDRESS, ConstantKind.OBJECT_ID):
        payload = value.value
    else:
        payload = value
    return [constant.kind.value, payload]


def _encode_function(func: Function) -> list[Any]:
    sig = func.signature
    return [
        func.name,
        [
            [_encode_type(t) for t in sig.type_parameters],
            [_encode_type(t) for t in sig.parameters],
            [_encode_type(t) for t in sig.return_types],
        ],
        [_encode_type(t) for t in func.locals],
        [[i.opcode.value, _encode_operand(i.operand)] for i in func.code],
        func.is_public,
        func.is_entry,
    ]


def _encode_struct(struct: StructDef) -> list[Any]:
    ab = struct.abilities
    return [
        struct.name,
        [_encode_type(t) for t in struct.type_parameters],
        [[fname, _encode_type(ftype)] for fname, ftype in struct.fields],
        [ab.has_copy, ab.has_drop, ab.has_store, ab.has_key],
    ]


def _encode_module(module: Module) -> list[Any]:
    return [
        module.name,
        [module.version.major, module.version.minor],
        [_encode_constant(c) for c in module.constants],
        [_encode_struct(s) for s in module.structs],
        [_encode_function(f) for f in module.functions],
        [dep.value for dep in module.dependencies],
    ]


def _encode_bytecode(bytecode: Bytecode) -> list[Any]:
    meta = bytecode.metadata
    return [
        bytecode.package_id.value,
        [meta.name, meta.version, meta.author, meta.description],
        [_encode_module(m) for m in bytecode.modules],
    ]


# ---------------------------------------------------------------- decoding


def _list(doc: Any, what: str) -> list[Any]:
    if not isinstance(doc, list):
        raise TypeError(f"{what} must be an array")
    return doc


def _str(doc: Any, what: str) -> str:
    if not isinstance(doc, str):
        raise TypeError(f"{what} must be a string")
    return doc


def _opt_str(doc: Any, what: str) -> str | None:
    return None if doc is None else _str(doc, what)


def _bool(doc: Any, what: str) -> bool:
    if not isinstance(doc, bool):
        raise TypeError(f"{what} must be a boolean")
    return doc


def _decode_type(doc: Any) -> TypeTag:
    kind, *rest = _list(doc, "type tag")
    if kind == "P":
        (value,) = rest
        return Primitive(value)
    if kind == "V":
        (element,) = rest
        return VectorType(_decode_type(element))
    if kind == "S":
        package, module, name, params = rest
        return StructType(
            ObjectID(package),
            _str(module, "struct module"),
            _str(name, "struct name"),
            tuple(_decode_type(p) for p in _list(params, "type parameters")),
        )
    if kind == "T":
        (index,) = rest
        return TypeParameterType(index)
    if kind == "R":
        (inner,) = rest
        return ReferenceType(_decode_type(inner))
    if kind == "M":
        (inner,) = rest
        return MutableReferenceType(_decode_type(inner))
    raise ValueError(f"unknown type tag kind: {kind!r}")


def _decode_types(doc: Any, what: str) -> list[TypeTag]:
    return [_decode_type(t) for t in _list(doc, what)]


def _decode_operand(doc: Any) -> Any:
    if isinstance(doc, dict):
        return CallGenericArgs(
            doc["module_idx"],
            doc["function_idx"],
            tuple(_decode_types(doc["type_args"], "type arguments")),
        )
    if isinstance(doc, list):
        return _decode_type(doc)
    return doc


def _decode_instruction(doc: Any) -> Instruction:
    opcode, operand = _list(doc, "instruction")
    return Instruction(Opcode(opcode), _decode_operand(operand))


def _decode_constant(doc: Any) -> Constant:
    kind_raw, payload = _list(doc, "constant")
    kind = ConstantKind(kind_raw)
    if kind is ConstantKind.U128:
        if not isinstance(payload, bytes) or len(payload) != _U128_BYTES:
            raise ValueError("U128 constant must be encoded in 16 bytes")
        return Constant(kind, int.from_bytes(payload, "big"))
    if kind is ConstantKind.ADDRESS:
        return Constant(kind, SilverAddress(payload))
    if kind is ConstantKind.OBJECT_ID:
        return Constant(kind, ObjectID(payload))
    return Constant(kind, payload)


def _decode_function(doc: Any) -> Function:
    name, sig_raw, locals_raw, code_raw, is_public, is_entry = _list(doc, "function")
    type_params, params, returns = _list(sig_raw, "signature")
    return Function(
        name=_str(name, "function name"),
        signature=FunctionSignature(
            type_parameters=_decode_types(type_params, "type parameters"),
            parameters=_decode_types(params, "parameters"),
            return_types=_decode_types(returns, "return types"),
        ),
        locals=_decode_types(locals_raw, "locals"),
        code=[_decode_instruction(i) for i in _list(code_raw, "code")],
        is_public=_bool(is_public, "is_public"),
        is_entry=_bool(is_entry, "is_entry"),
    )


def _decode_struct(doc: Any) -> StructDef:
    name, type_params, fields_raw, abilities_raw = _list(doc, "struct")
    fields = []
    for entry in _list(fields_raw, "struct fields"):
        fname, ftype = _list(entry, "struct field")
        fields.append((_str(fname, "field name"), _decode_type(ftype)))
    copy, drop, store, key = (_bool(a, "ability") for a in _list(abilities_raw, "abilities"))
    return StructDef(
        name=_str(name, "struct name"),
        type_parameters=_decode_types(type_params, "type parameters"),
        fields=fields,
        abilities=StructAbilities(copy, drop, store, key),
    )


def _decode_module(doc: Any) -> Module:
    name, version_raw, constants, structs, functions, deps = _list(doc, "module")
    major, minor = _list(version_raw, "version")
    return Module(
        name=_str(name, "module name"),
        version=BytecodeVersion(major, minor),
        constants=[_decode_constant(c) for c in _list(constants, "constants")],
        structs=[_decode_struct(s) for s in _list(structs, "structs")],
        functions=[_decode_function(f) for f in _list(functions, "functions")],
        dependencies=[ObjectID(d) for d in _list(deps, "dependencies")],
    )


def _decode_bytecode(doc: Any) -> Bytecode:
    package_raw, meta_raw, modules_raw = _list(doc, "package")
    name, version, author, description = _list(meta_raw, "metadata")
    return Bytecode(
        package_id=ObjectID(package_raw),
        metadata=PackageMetadata(
            name=_str(name, "package name"),
            version=_str(version, "package version"),
            author=_opt_str(author, "author"),
            description=_opt_str(description, "description"),
        ),
        modules=[_decode_module(m) for m in _list(modules_raw, "modules")],
    )