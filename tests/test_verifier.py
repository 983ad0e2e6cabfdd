import pytest

from quantumvm.bytecode import (
    Bytecode,
    Function,
    FunctionSignature,
    Module,
    PackageMetadata,
)
from quantumvm.checks import (
    BorrowCheckingError,
    InvalidLocalIndexError,
    MissingReturnError,
    ResourceSafetyViolation,
    StackUnderflowError,
    TypeMismatchError,
    VerifierError,
)
from quantumvm.instructions import Instruction, Opcode
from quantumvm.types import BytecodeVersion, ObjectID, Primitive
from quantumvm.verifier import verify_bytecode, verify_function, verify_module


def _fn(code, params=(), returns=(), local_types=()):
    return Function(
        name="test",
        signature=FunctionSignature(
            parameters=list(params), return_types=list(returns)
        ),
        locals=list(local_types),
        code=code,
        is_public=True,
    )


def I(op, operand=None):
    return Instruction(op, operand)


def test_simple_function_verification():
    func = _fn([I(Opcode.LD_U64, 42), I(Opcode.RET)], returns=[Primitive.U64])
    assert verify_function(func) is None


def test_type_mismatch_detection():
    func = _fn([I(Opcode.LD_TRUE), I(Opcode.RET)], returns=[Primitive.U64])
    with pytest.raises(TypeMismatchError) as info:
        verify_function(func)
    assert info.value.expected == "U64"
    assert info.value.got == "Bool"


def test_stack_underflow_detection():
    func = _fn([I(Opcode.POP), I(Opcode.RET)])
    with pytest.raises(StackUnderflowError):
        verify_function(func)


def test_arithmetic_type_checking():
    func = _fn(
        [I(Opcode.LD_U64, 10), I(Opcode.LD_U64, 20), I(Opcode.ADD), I(Opcode.RET)],
        returns=[Primitive.U64],
    )
    assert verify_function(func) is None


def test_borrow_checking():
    func = _fn(
        [I(Opcode.BORROW_LOC, 0), I(Opcode.POP), I(Opcode.RET)],
        params=[Primitive.U64],
    )
    assert verify_function(func) is None


def test_mixed_arithmetic_rejected():
    func = _fn(
        [I(Opcode.LD_U64, 1), I(Opcode.LD_U8, 1), I(Opcode.ADD), I(Opcode.RET)],
        returns=[Primitive.U64],
    )
    with pytest.raises(TypeMismatchError) as info:
        verify_function(func)
    assert info.value.expected == "integer types"


def test_arithmetic_on_bools_rejected():
    func = _fn([I(Opcode.LD_TRUE), I(Opcode.LD_TRUE), I(Opcode.ADD), I(Opcode.RET)])
    with pytest.raises(TypeMismatchError):
        verify_function(func)


def test_missing_return():
    func = _fn([I(Opcode.LD_U64, 1)])
    with pytest.raises(MissingReturnError):
        verify_function(func)


def test_empty_function_passes():
    assert verify_function(_fn([])) is None


def test_double_move_rejected():
    func = _fn(
        [I(Opcode.MOVE_LOC, 0), I(Opcode.MOVE_LOC, 0), I(Opcode.RET)],
        params=[Primitive.U64],
    )
    with pytest.raises(ResourceSafetyViolation):
        verify_function(func)


def test_move_while_borrowed_rejected():
    func = _fn(
        [I(Opcode.BORROW_LOC, 0), I(Opcode.MOVE_LOC, 0), I(Opcode.RET)],
        params=[Primitive.U64],
    )
    with pytest.raises(BorrowCheckingError):
        verify_function(func)


def test_invalid_local_index():
    func = _fn([I(Opcode.COPY_LOC, 3), I(Opcode.RET)], params=[Primitive.U64])
    with pytest.raises(InvalidLocalIndexError) as info:
        verify_function(func)
    assert info.value.index == 3


def test_store_loc_type_mismatch():
    func = _fn(
        [I(Opcode.LD_TRUE), I(Opcode.STORE_LOC, 0), I(Opcode.RET)],
        local_types=[Primitive.U64],
    )
    with pytest.raises(TypeMismatchError):
        verify_function(func)


def test_store_loc_matching_type():
    func = _fn(
        [I(Opcode.LD_U64, 5), I(Opcode.STORE_LOC, 0), I(Opcode.RET)],
        local_types=[Primitive.U64],
    )
    assert verify_function(func) is None


def test_parameters_start_on_stack():
    func = _fn([I(Opcode.RET)], params=[Primitive.U64], returns=[Primitive.U64])
    assert verify_function(func) is None


def test_branch_true_requires_bool():
    func = _fn([I(Opcode.LD_U64, 1), I(Opcode.BRANCH_TRUE, 1), I(Opcode.RET)])
    with pytest.raises(TypeMismatchError):
        verify_function(func)


def test_code_after_unconditional_branch_is_skipped():
    func = _fn([I(Opcode.BRANCH, 2), I(Opcode.POP), I(Opcode.RET)])
    assert verify_function(func) is None


def test_invalid_branch_is_structural_error():
    func = _fn([I(Opcode.BRANCH, 100), I(Opcode.RET)])
    with pytest.raises(ResourceSafetyViolation) as info:
        verify_function(func)
    assert "Invalid branch at PC 0" in info.value.message


def test_comparison_produces_bool():
    func = _fn(
        [I(Opcode.LD_U64, 10), I(Opcode.LD_U64, 20), I(Opcode.LT), I(Opcode.RET)],
        returns=[Primitive.BOOL],
    )
    assert verify_function(func) is None


def test_module_with_incompatible_version():
    module = Module("m", version=BytecodeVersion(0, 1))
    with pytest.raises(ResourceSafetyViolation) as info:
        verify_module(module)
    assert "Incompatible bytecode version" in info.value.message


def test_module_checks_each_function():
    module = Module("m", functions=[_fn([I(Opcode.RET)]), _fn([I(Opcode.POP), I(Opcode.RET)])])
    with pytest.raises(StackUnderflowError):
        verify_module(module)


def test_bytecode_verification():
    good = Module("good", functions=[_fn([I(Opcode.LD_U64, 42), I(Opcode.RET)], returns=[Primitive.U64])])
    package = Bytecode(ObjectID(bytes([1]) * 64), PackageMetadata("pkg"), modules=[good])
    assert verify_bytecode(package) is None

    package.modules.append(Module("bad", functions=[_fn([I(Opcode.LD_U64, 1)])]))
    with pytest.raises(VerifierError):
        verify_bytecode(package)


def test_bytecode_structural_error_names_module():
    bad = Module("broken", functions=[_fn([I(Opcode.BRANCH, 100), I(Opcode.RET)])])
    package = Bytecode(ObjectID(bytes([1]) * 64), PackageMetadata("pkg"), modules=[bad])
    with pytest.raises(ResourceSafetyViolation) as info:
        verify_bytecode(package)
    assert info.value.message.startswith("Module 0 (broken)")