"""
CanteenGo — Order state machine

    pending ──► ready ──► completed

No skipping, no moving backwards. Re-requesting the current state is a
no-op so double clicks and client retries do not surface errors.
"""
from canteengo.core.errors import InvalidTransitionError
from canteengo.models.order import OrderStatus

NEXT_STATUS: dict[OrderStatus, OrderStatus] = {
    OrderStatus.PENDING: OrderStatus.READY,
    OrderStatus.READY: OrderStatus.COMPLETED,
}

INITIAL_STATUS = OrderStatus.PENDING


def is_terminal(status: OrderStatus) -> bool:
    return status not in NEXT_STATUS


def check_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """
    Validate current → target.

    Returns True when the status must change, False when target equals
    current (idempotent replay). Raises InvalidTransitionError otherwise.
    """
    current = OrderStatus(current)
    target = OrderStatus(target)
    if current == target:
        return False
    if NEXT_STATUS.get(current) != target:
        raise InvalidTransitionError(current.value, target.value)
    return True
