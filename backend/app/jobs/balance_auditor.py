from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from app.extensions import db
from app.models import AuditLog, BalanceEntry, User


def _journal_totals(user_id: int) -> dict:
    rows = (
        db.session.query(
            BalanceEntry.bucket,
            BalanceEntry.direction,
            func.coalesce(func.sum(BalanceEntry.amount), 0.0),
        )
        .filter(BalanceEntry.user_id == int(user_id))
        .group_by(BalanceEntry.bucket, BalanceEntry.direction)
        .all()
    )
    totals = {"pending": 0.0, "available": 0.0, "earned": 0.0}
    for bucket, direction, amount in rows:
        sign = 1.0 if direction == "credit" else -1.0
        totals[bucket] = totals.get(bucket, 0.0) + sign * float(amount or 0.0)
        if bucket == "pending" and direction == "credit":
            totals["earned"] += float(amount or 0.0)
    return totals


def audit_seller_balances(*, limit: int = 500, tolerance: float = 0.01) -> dict:
    """Detect seller balance anomalies (journal vs stored balance, invariants).

    This does NOT auto-correct balances. It logs anomalies into AuditLog so they are visible.
    """
    log = current_app.logger
    checked = 0
    anomalies = 0
    now = datetime.utcnow()

    users = (
        User.query
        .filter(
            (User.total_earnings != 0)
            | (User.pending_balance != 0)
            | (User.available_balance != 0)
            | User.id.in_(select(BalanceEntry.user_id))
        )
        .order_by(User.id.asc())
        .limit(int(limit))
        .all()
    )

    for u in users:
        checked += 1
        try:
            computed = _journal_totals(int(u.id))
            pending = float(u.pending_balance or 0.0)
            available = float(u.available_balance or 0.0)
            total = float(u.total_earnings or 0.0)

            issues = []
            if abs(computed["pending"] - pending) > float(tolerance):
                issues.append("pending_mismatch")
            if abs(computed["available"] - available) > float(tolerance):
                issues.append("available_mismatch")
            if abs(computed["earned"] - total) > float(tolerance):
                issues.append("earnings_mismatch")
            if pending < -float(tolerance):
                issues.append("negative_pending")
            if available < -float(tolerance):
                issues.append("negative_available")
            if pending + available - total > float(tolerance):
                issues.append("balance_exceeds_earnings")

            if not issues:
                continue

            anomalies += 1
            AuditLog.record(
                "balance_anomaly",
                target_type="user",
                target_id=int(u.id),
                meta={
                    "issues": issues,
                    "user_id": int(u.id),
                    "computed_pending": round(computed["pending"], 4),
                    "computed_available": round(computed["available"], 4),
                    "computed_earned": round(computed["earned"], 4),
                    "stored_pending": round(pending, 4),
                    "stored_available": round(available, 4),
                    "stored_total": round(total, 4),
                    "at": now.isoformat(),
                },
            )
            db.session.commit()
            log.error("balance anomaly for seller %s: %s", u.id, ", ".join(issues))
        except SQLAlchemyError:
            db.session.rollback()
            log.exception("balance audit failed for seller %s", u.id)

    return {"ok": True, "checked": checked, "anomalies": anomalies}
