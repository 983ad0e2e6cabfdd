import pytest

from quantumvm.checks import (
    MAX_STACK_DEPTH,
    AbstractStack,
    BorrowChecker,
    BorrowCheckingError,
    InvalidLocalIndexError,
    LocalState,
    MissingReturnError,
    ResourceSafetyViolation,
    StackOverflowError,
    StackUnderflowError,
    TypeMismatchError,
    VerifierError,
)
from quantumvm.types import Primitive, VectorType


def test_push_pop_is_lifo():
    stack = AbstractStack()
    stack.push(Primitive.U8)
    stack.push(Primitive.BOOL)
    assert stack.pop() == Primitive.BOOL
    assert stack.pop() == Primitive.U8
    assert len(stack) == 0


def test_max_depth_tracks_highest_point():
    stack = AbstractStack()
    stack.push(Primitive.U8)
    stack.push(Primitive.U8)
    stack.pop()
    stack.push(Primitive.U8)
    assert stack.max_depth == 2
    assert len(stack) == 2


def test_pop_empty_underflows():
    stack = AbstractStack()
    with pytest.raises(StackUnderflowError) as info:
        stack.pop()
    assert info.value.pc == 0
    assert str(info.value) == "Stack underflow at PC 0"


def test_peek_leaves_value():
    stack = AbstractStack()
    stack.push(VectorType(Primitive.U8))
    assert stack.peek() == VectorType(Primitive.U8)
    assert len(stack) == 1


def test_peek_empty_underflows():
    with pytest.raises(StackUnderflowError):
        AbstractStack().peek()


def test_overflow_past_max_depth():
    stack = AbstractStack()
    for _ in range(MAX_STACK_DEPTH):
        stack.push(Primitive.U64)
    assert len(stack) == MAX_STACK_DEPTH
    with pytest.raises(StackOverflowError):
        stack.push(Primitive.U64)


def test_pop_expect_matches():
    stack = AbstractStack()
    stack.push(Primitive.BOOL)
    stack.pop_expect(Primitive.BOOL)
    assert len(stack) == 0


def test_pop_expect_mismatch():
    stack = AbstractStack()
    stack.push(Primitive.BOOL)
    with pytest.raises(TypeMismatchError) as info:
        stack.pop_expect(Primitive.U64)
    assert info.value.expected == str(Primitive.U64)
    assert info.value.got == str(Primitive.BOOL)
    assert isinstance(info.value, VerifierError)


def test_move_then_move_again_is_resource_violation():
    checker = BorrowChecker(1)
    checker.move_local(0)
    assert checker.locals[0] is LocalState.MOVED
    with pytest.raises(ResourceSafetyViolation) as info:
        checker.move_local(0)
    assert info.value.message == "Local 0 already moved"


def test_copy_after_move_fails():
    checker = BorrowChecker(1)
    checker.move_local(0)
    with pytest.raises(ResourceSafetyViolation):
        checker.copy_local(0)


def test_copy_leaves_state_available():
    checker = BorrowChecker(2)
    checker.copy_local(1)
    assert checker.locals[1] is LocalState.AVAILABLE


def test_borrows_accumulate():
    checker = BorrowChecker(1)
    checker.borrow_local(0)
    checker.borrow_local(0)
    assert checker.locals[0] is LocalState.BORROWED
    assert checker.borrow_counts[0] == 2


def test_copy_while_borrowed_is_allowed_but_move_is_not():
    checker = BorrowChecker(1)
    checker.borrow_local(0)
    checker.copy_local(0)
    assert checker.locals[0] is LocalState.BORROWED
    with pytest.raises(BorrowCheckingError):
        checker.move_local(0)


def test_mut_borrow_excludes_other_uses():
    checker = BorrowChecker(1)
    checker.mut_borrow_local(0)
    assert checker.locals[0] is LocalState.MUT_BORROWED
    for use in (checker.copy_local, checker.borrow_local, checker.mut_borrow_local, checker.move_local):
        with pytest.raises(BorrowCheckingError):
            use(0)


def test_mut_borrow_while_borrowed_fails():
    checker = BorrowChecker(1)
    checker.borrow_local(0)
    with pytest.raises(BorrowCheckingError):
        checker.mut_borrow_local(0)


def _assert_invalid_local(checker, error):
    assert error.index == 2
    assert error.pc == 0
    assert str(error) == "Invalid local index 2 at PC 0"
    assert len(checker.locals) == 2
    assert all(state is LocalState.AVAILABLE for state in checker.locals)


def test_out_of_range_move():
    checker = BorrowChecker(2)
    with pytest.raises(InvalidLocalIndexError) as info:
        checker.move_local(2)
    _assert_invalid_local(checker, info.value)


def test_out_of_range_copy():
    checker = BorrowChecker(2)
    with pytest.raises(InvalidLocalIndexError) as info:
        checker.copy_local(2)
    _assert_invalid_local(checker, info.value)


def test_out_of_range_borrow():
    checker = BorrowChecker(2)
    with pytest.raises(InvalidLocalIndexError) as info:
        checker.borrow_local(2)
    _assert_invalid_local(checker, info.value)


def test_out_of_range_mut_borrow():
    checker = BorrowChecker(2)
    with pytest.raises(InvalidLocalIndexError) as info:
        checker.mut_borrow_local(2)
    _assert_invalid_local(checker, info.value)


def test_missing_return_message():
    assert str(MissingReturnError()) == "Missing return at end of function"