from __future__ import annotations

import json

from app.extensions import db
from app.models import LedgerEvent

ORDER_PAID = "order.paid"
ORDER_CANCELLED = "order.cancelled"
PAYOUT_REQUESTED = "payout.requested"
PAYOUT_APPROVED = "payout.approved"
PAYOUT_REJECTED = "payout.rejected"
RECONCILIATION_UNMATCHED = "reconciliation.unmatched"

EVENT_KINDS = (
    ORDER_PAID,
    ORDER_CANCELLED,
    PAYOUT_REQUESTED,
    PAYOUT_APPROVED,
    PAYOUT_REJECTED,
    RECONCILIATION_UNMATCHED,
)


def emit(kind: str, *, order_id=None, payout_id=None, seller_id=None, **payload) -> LedgerEvent:
    """Queue a notification in the caller's transaction.

    Nothing is sent here; app.jobs.event_dispatcher delivers committed rows,
    so a rolled back transition never notifies and a slow notifier never
    holds a ledger transaction open.
    """
    if kind not in EVENT_KINDS:
        raise ValueError(f"unknown ledger event {kind!r}")
    ev = LedgerEvent(
        kind=kind,
        order_id=int(order_id) if order_id is not None else None,
        payout_id=int(payout_id) if payout_id is not None else None,
        seller_id=int(seller_id) if seller_id is not None else None,
        payload=json.dumps(payload, default=str),
        status="queued",
        attempt_count=0,
    )
    db.session.add(ev)
    return ev
