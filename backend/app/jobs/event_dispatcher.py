from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from app.extensions import db
from app.models import LedgerEvent
from app.utils.notify import OPERATOR_KINDS, post_event, send_telegram, telegram_text


def _deliver(ev: LedgerEvent) -> tuple[bool, str]:
    envelope = ev.envelope()
    ok, detail = post_event(envelope)
    if not ok:
        return ok, detail
    if ev.kind in OPERATOR_KINDS:
        return send_telegram(telegram_text(envelope))
    return ok, detail


def dispatch_pending_events(*, limit: int = 100) -> dict:
    """Deliver committed ledger events with retries + dead-letter.

    Status flow:
      queued -> sent
      queued -> failed (transient) -> queued (scheduled) -> ...
      queued -> dead (after max attempts)

    Only LedgerEvent rows are written here; a failed delivery never touches
    orders, payouts or balances.
    """
    log = current_app.logger
    sent = 0
    retried = 0
    dead = 0
    errors = 0
    now = datetime.utcnow()

    rows = (
        LedgerEvent.query
        .filter(LedgerEvent.status == "queued")
        .filter((LedgerEvent.next_attempt_at.is_(None)) | (LedgerEvent.next_attempt_at <= now))
        .order_by(LedgerEvent.created_at.asc(), LedgerEvent.id.asc())
        .limit(int(limit))
        .all()
    )

    for ev in rows:
        try:
            ok, detail = _deliver(ev)

            if ok:
                ev.status = "sent"
                ev.sent_at = now
                ev.last_error = None
                ev.next_attempt_at = None
                db.session.commit()
                sent += 1
                continue

            ev.attempt_count = int(ev.attempt_count or 0) + 1
            ev.last_error = (detail or "send_failed")[:240]
            if int(ev.attempt_count) >= int(ev.max_attempts or 5):
                ev.status = "dead"
                ev.dead_lettered_at = now
                ev.next_attempt_at = None
                dead += 1
                log.error("ledger event %s (%s) dead-lettered: %s", ev.id, ev.kind, ev.last_error)
            else:
                ev.schedule_next_attempt(base_seconds=15, max_seconds=3600)
                retried += 1
                log.warning("ledger event %s (%s) delivery failed, attempt %s: %s", ev.id, ev.kind, ev.attempt_count, ev.last_error)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            errors += 1
            log.exception("ledger event %s could not be updated", ev.id)

    if rows:
        log.info("event dispatch: sent=%s retried=%s dead=%s errors=%s", sent, retried, dead, errors)
    return {"ok": True, "processed": len(rows), "sent": sent, "retried": retried, "dead": dead, "errors": errors}
