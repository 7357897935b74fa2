import pytest

from canteengo.core.errors import InvalidTransitionError
from canteengo.core.order_state import INITIAL_STATUS, NEXT_STATUS, check_transition, is_terminal
from canteengo.models import OrderStatus


def test_orders_start_pending():
    assert INITIAL_STATUS == OrderStatus.PENDING


@pytest.mark.parametrize("current,target", list(NEXT_STATUS.items()))
def test_forward_step_requires_write(current, target):
    assert check_transition(current, target) is True


@pytest.mark.parametrize("status", list(OrderStatus))
def test_same_state_is_a_no_op(status):
    assert check_transition(status, status) is False


def test_accepts_plain_strings():
    assert check_transition("pending", "ready") is True


@pytest.mark.parametrize("current,target", [
    (OrderStatus.PENDING, OrderStatus.COMPLETED),
    (OrderStatus.READY, OrderStatus.PENDING),
    (OrderStatus.COMPLETED, OrderStatus.READY),
    (OrderStatus.COMPLETED, OrderStatus.PENDING),
])
def test_skips_and_backward_moves_are_rejected(current, target):
    with pytest.raises(InvalidTransitionError) as exc_info:
        check_transition(current, target)
    assert exc_info.value.current == current.value
    assert exc_info.value.target == target.value


def test_only_completed_is_terminal():
    assert is_terminal(OrderStatus.COMPLETED)
    assert not is_terminal(OrderStatus.PENDING)
    assert not is_terminal(OrderStatus.READY)
