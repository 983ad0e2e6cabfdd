import pytest

from quantumvm.instructions import CallGenericArgs, Instruction, Opcode
from quantumvm.types import Primitive, VectorType


def test_instruction_fuel_cost():
    assert Instruction(Opcode.ADD).fuel_cost() == 1
    assert Instruction(Opcode.MUL).fuel_cost() == 2
    assert Instruction(Opcode.DIV).fuel_cost() == 5
    assert Instruction(Opcode.CRYPTO_HASH_BLAKE3).fuel_cost() == 100
    assert Instruction(Opcode.CRYPTO_VERIFY_SIGNATURE).fuel_cost() == 1000


@pytest.mark.parametrize(
    "instr, cost",
    [
        (Instruction(Opcode.NOP), 0),
        (Instruction(Opcode.LD_U128, 0), 2),
        (Instruction(Opcode.BORROW_LOC, 1), 2),
        (Instruction(Opcode.CALL, 3), 10),
        (Instruction(Opcode.CALL_GENERIC, CallGenericArgs(0, 1, [Primitive.U64])), 20),
        (Instruction(Opcode.CALL_NATIVE, 2), 50),
        (Instruction(Opcode.OBJECT_NEW), 50),
        (Instruction(Opcode.OBJECT_SHARE), 40),
        (Instruction(Opcode.VEC_PUSH), 3),
        (Instruction(Opcode.EVENT_EMIT, Primitive.U8), 20),
        (Instruction(Opcode.DEBUG_PRINT), 10),
        (Instruction(Opcode.ASSERT), 2),
    ],
)
def test_fuel_cost_table(instr, cost):
    assert instr.fuel_cost() == cost


def test_every_opcode_has_fuel_cost():
    for opcode in Opcode:
        if opcode in (Opcode.LD_U8, Opcode.LD_U16, Opcode.LD_U32, Opcode.LD_U64):
            instr = Instruction(opcode, 0)
        else:
            continue
        assert instr.fuel_cost() == 1


def test_instruction_is_branch():
    assert Instruction(Opcode.BRANCH, 10).is_branch()
    assert Instruction(Opcode.BRANCH_TRUE, 5).is_branch()
    assert Instruction(Opcode.BRANCH_FALSE, -3).is_branch()
    assert not Instruction(Opcode.ADD).is_branch()


def test_branch_offset():
    assert Instruction(Opcode.BRANCH_FALSE, -3).branch_offset() == -3
    assert Instruction(Opcode.BRANCH, 7).branch_offset() == 7
    assert Instruction(Opcode.LD_U64, 7).branch_offset() is None


def test_instruction_is_terminal():
    assert Instruction(Opcode.RET).is_terminal()
    assert Instruction(Opcode.ABORT).is_terminal()
    assert not Instruction(Opcode.ADD).is_terminal()


def test_operand_required_for_immediate():
    with pytest.raises(TypeError):
        Instruction(Opcode.LD_U64)


def test_operand_rejected_when_not_taken():
    with pytest.raises(ValueError):
        Instruction(Opcode.ADD, 1)


@pytest.mark.parametrize(
    "opcode, value",
    [
        (Opcode.LD_U8, 256),
        (Opcode.LD_U16, 65536),
        (Opcode.LD_U32, 2**32),
        (Opcode.LD_U64, -1),
        (Opcode.BRANCH, 2**31),
        (Opcode.COPY_LOC, 70000),
    ],
)
def test_operand_out_of_range(opcode, value):
    with pytest.raises(ValueError):
        Instruction(opcode, value)


def test_bool_is_not_an_integer_operand():
    with pytest.raises(TypeError):
        Instruction(Opcode.LD_U8, True)


def test_vec_empty_requires_type_tag():
    with pytest.raises(TypeError):
        Instruction(Opcode.VEC_EMPTY, 5)
    instr = Instruction(Opcode.VEC_EMPTY, VectorType(Primitive.U8))
    assert instr.operand == VectorType(Primitive.U8)


def test_call_generic_requires_args_object():
    with pytest.raises(TypeError):
        Instruction(Opcode.CALL_GENERIC, 3)


def test_call_generic_args_normalised():
    args = CallGenericArgs(1, 2, [Primitive.U8, Primitive.BOOL])
    assert args.type_args == (Primitive.U8, Primitive.BOOL)
    assert args == CallGenericArgs(1, 2, (Primitive.U8, Primitive.BOOL))


def test_call_generic_args_validation():
    with pytest.raises(ValueError):
        CallGenericArgs(-1, 0)
    with pytest.raises(TypeError):
        CallGenericArgs(0, 0, ["U8"])


def test_instruction_equality():
    assert Instruction(Opcode.LD_U64, 42) == Instruction(Opcode.LD_U64, 42)
    assert Instruction(Opcode.LD_U64, 42) != Instruction(Opcode.LD_U64, 43)


def test_instruction_str():
    assert str(Instruction(Opcode.LD_U64, 42)) == "LdU64(42)"
    assert str(Instruction(Opcode.RET)) == "Ret"


def test_opcode_requires_enum():
    with pytest.raises(TypeError):
        Instruction("Add")