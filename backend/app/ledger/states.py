from __future__ import annotations

from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PayoutStatus(str, Enum):
    """Seller-funds axis of an Order."""

    PENDING = "pending"
    AVAILABLE = "available"
    PAID_OUT = "paid_out"


class PayoutRequestStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    PAID = "PAID"
    REJECTED = "REJECTED"


class PaymentChannel(str, Enum):
    MANUAL = "manual"
    CARD = "card"
    CRYPTO = "crypto"
    FREE = "free"


PAID_STATUSES = frozenset({OrderStatus.PAID.value, OrderStatus.COMPLETED.value})

ORDER_TRANSITIONS = {
    OrderStatus.PENDING: frozenset({OrderStatus.PAID, OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.PAID: frozenset(),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

# Only advances while the order's status is one of PAID_STATUSES.
ORDER_PAYOUT_TRANSITIONS = {
    PayoutStatus.PENDING: frozenset({PayoutStatus.AVAILABLE}),
    PayoutStatus.AVAILABLE: frozenset({PayoutStatus.PAID_OUT}),
    PayoutStatus.PAID_OUT: frozenset(),
}

PAYOUT_TRANSITIONS = {
    PayoutRequestStatus.PENDING: frozenset(
        {PayoutRequestStatus.COMPLETED, PayoutRequestStatus.PAID, PayoutRequestStatus.REJECTED}
    ),
    PayoutRequestStatus.COMPLETED: frozenset(),
    PayoutRequestStatus.PAID: frozenset(),
    PayoutRequestStatus.REJECTED: frozenset(),
}


def sources_for(table: dict, target) -> list[str]:
    """Every state from which ``target`` is reachable, as stored column values.

    Guarded updates use this as their ``WHERE status IN (...)`` clause, so the
    transition table is what the database enforces.
    """
    return sorted(s.value for s, targets in table.items() if target in targets)


def can_transition(table: dict, current: str, target) -> bool:
    enum_cls = type(target)
    try:
        src = enum_cls(current)
    except ValueError:
        return False
    return target in table.get(src, frozenset())
