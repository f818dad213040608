"""Ledger store primitives: transactions, guarded updates and balance effects.

Balance columns on User are only ever touched from here, and only by the
lifecycle modules in this package as part of an Order/Payout transition.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import update

from app.extensions import db
from app.models import BalanceEntry, User

# Float columns; comparisons against balances allow half a cent of drift.
CENT_TOLERANCE = 0.005


def _now() -> datetime:
    return datetime.utcnow()


def money(value) -> float:
    return round(float(value or 0.0), 2)


@contextmanager
def atomic():
    """One ledger transaction: commit on success, roll back on any error."""
    try:
        yield db.session
        db.session.commit()
    except BaseException:
        db.session.rollback()
        raise


def guarded_update(model, ident: int, where: list, values: dict) -> bool:
    """``UPDATE model SET values WHERE id = ident AND <where>``; True when the row moved."""
    stmt = (
        update(model)
        .where(model.id == int(ident), *where)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return db.session.execute(stmt).rowcount == 1


def _journal(user_id: int, *, bucket: str, direction: str, amount: float, kind: str, reference: str, note: str) -> None:
    db.session.add(
        BalanceEntry(
            user_id=int(user_id),
            bucket=bucket,
            direction=direction,
            amount=money(amount),
            kind=kind,
            reference=reference,
            idempotency_key=f"{int(user_id)}:{kind}:{bucket}:{direction}:{reference}"[:160],
            note=(note or "")[:240],
        )
    )


def credit_pending(user_id: int, amount: float, *, reference: str, note: str = "") -> bool:
    """Order paid: pending and lifetime earnings grow together."""
    amt = money(amount)
    moved = guarded_update(
        User,
        user_id,
        [],
        {
            "pending_balance": User.pending_balance + amt,
            "total_earnings": User.total_earnings + amt,
        },
    )
    if moved:
        _journal(user_id, bucket="pending", direction="credit", amount=amt, kind="order_paid", reference=reference, note=note)
    return moved


def release_pending(user_id: int, amount: float, *, reference: str, note: str = "") -> bool:
    """Holding period over: pending -> available. False when pending cannot cover it."""
    amt = money(amount)
    moved = guarded_update(
        User,
        user_id,
        [User.pending_balance >= amt - CENT_TOLERANCE],
        {
            "pending_balance": User.pending_balance - amt,
            "available_balance": User.available_balance + amt,
        },
    )
    if moved:
        _journal(user_id, bucket="pending", direction="debit", amount=amt, kind="holding_matured", reference=reference, note=note)
        _journal(user_id, bucket="available", direction="credit", amount=amt, kind="holding_matured", reference=reference, note=note)
    return moved


def lock_available(user_id: int, amount: float, *, reference: str, note: str = "") -> bool:
    """Payout requested: funds leave available and sit in the payout row."""
    amt = money(amount)
    moved = guarded_update(
        User,
        user_id,
        [User.available_balance >= amt - CENT_TOLERANCE],
        {"available_balance": User.available_balance - amt},
    )
    if moved:
        _journal(user_id, bucket="available", direction="debit", amount=amt, kind="payout_locked", reference=reference, note=note)
    return moved


def unlock_available(user_id: int, amount: float, *, reference: str, note: str = "") -> bool:
    """Payout rejected: the locked amount returns to available."""
    amt = money(amount)
    moved = guarded_update(User, user_id, [], {"available_balance": User.available_balance + amt})
    if moved:
        _journal(user_id, bucket="available", direction="credit", amount=amt, kind="payout_released", reference=reference, note=note)
    return moved
