import json
from datetime import datetime, timedelta

from app.extensions import db


class LedgerEvent(db.Model):
    """Outbox row for a committed ledger transition, delivered after commit."""

    __tablename__ = "ledger_events"

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(48), nullable=False, index=True)  # order.paid, payout.approved, ...

    order_id = db.Column(db.Integer, nullable=True, index=True)
    payout_id = db.Column(db.Integer, nullable=True, index=True)
    seller_id = db.Column(db.Integer, nullable=True, index=True)
    payload = db.Column(db.Text, nullable=False, default="{}")

    # queued -> sent / failed / dead
    status = db.Column(db.String(16), nullable=False, default="queued", index=True)

    attempt_count = db.Column(db.Integer, nullable=False, default=0)
    max_attempts = db.Column(db.Integer, nullable=False, default=5)
    next_attempt_at = db.Column(db.DateTime, nullable=True)
    last_error = db.Column(db.String(240), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    sent_at = db.Column(db.DateTime, nullable=True)
    dead_lettered_at = db.Column(db.DateTime, nullable=True)

    def schedule_next_attempt(self, *, base_seconds: int = 15, max_seconds: int = 3600):
        """Exponential backoff with a cap."""
        n = int(self.attempt_count or 0)
        delay = min(int(base_seconds * (2 ** max(n, 0))), int(max_seconds))
        self.next_attempt_at = datetime.utcnow() + timedelta(seconds=delay)

    def payload_dict(self) -> dict:
        try:
            data = json.loads(self.payload or "{}")
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def envelope(self) -> dict:
        """Wire shape handed to the notification dispatcher."""
        return {
            "event_id": int(self.id),
            "kind": self.kind,
            "order_id": self.order_id,
            "payout_id": self.payout_id,
            "seller_id": self.seller_id,
            "data": self.payload_dict(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def to_dict(self):
        return {
            **self.envelope(),
            "status": self.status,
            "attempt_count": int(self.attempt_count or 0),
            "max_attempts": int(self.max_attempts or 0),
            "next_attempt_at": self.next_attempt_at.isoformat() if self.next_attempt_at else None,
            "last_error": self.last_error or "",
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "dead_lettered_at": self.dead_lettered_at.isoformat() if self.dead_lettered_at else None,
        }
