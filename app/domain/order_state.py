# app/domain/order_state.py
from enum import Enum

from app.domain.errors import ConflictError


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class FailureReason(str, Enum):
    CANCELLED = "cancelled"
    EXPIRED = "expired"


# tylko do przodu, confirmed i failed sa terminalne
_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.FAILED}),
    OrderStatus.CONFIRMED: frozenset(),
    OrderStatus.FAILED: frozenset(),
}


class InvalidTransition(ConflictError):
    code = "INVALID_ORDER_TRANSITION"

    def __init__(self, current: OrderStatus, target: OrderStatus):
        super().__init__(f"Order cannot move from {current.value} to {target.value}")
        self.current = current
        self.target = target


def is_terminal(status: OrderStatus | str) -> bool:
    return not _TRANSITIONS[OrderStatus(status)]


def can_transition(current: OrderStatus | str, target: OrderStatus | str) -> bool:
    return OrderStatus(target) in _TRANSITIONS[OrderStatus(current)]


def ensure_transition(current: OrderStatus | str, target: OrderStatus | str) -> OrderStatus:
    """
    Sprawdza przejscie stanu zamowienia.

    Zwraca docelowy status albo rzuca InvalidTransition. Sam zapis robi repo
    warunkowym UPDATE ... WHERE status = 'pending', wiec dwa rownolegle
    callbacki nie moga obu "wygrac".
    """
    current, target = OrderStatus(current), OrderStatus(target)
    if target not in _TRANSITIONS[current]:
        raise InvalidTransition(current, target)
    return target
