from datetime import datetime

from app.extensions import db


class BalanceEntry(db.Model):
    """Journal row for one seller balance movement.

    The stored balances on User must always equal the sum of these rows per bucket.
    """

    __tablename__ = "balance_entries"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    bucket = db.Column(db.String(16), nullable=False)  # pending | available
    direction = db.Column(db.String(8), nullable=False)  # credit | debit
    amount = db.Column(db.Float, nullable=False, default=0.0)

    kind = db.Column(db.String(32), nullable=False)  # order_paid, holding_matured, payout_locked, payout_released
    reference = db.Column(db.String(80), nullable=False, index=True)  # order:<id> | payout:<id>
    idempotency_key = db.Column(db.String(160), nullable=False, unique=True, index=True)

    note = db.Column(db.String(240), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "user_id": int(self.user_id),
            "bucket": self.bucket,
            "direction": self.direction,
            "amount": float(self.amount or 0.0),
            "kind": self.kind,
            "reference": self.reference,
            "note": self.note or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
