import json
from datetime import datetime

from app.extensions import db


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(120), nullable=False, default="")
    email = db.Column(db.String(255), unique=True, index=True, nullable=False)

    role = db.Column(db.String(32), nullable=False, default="buyer")  # buyer | seller | admin

    # Seller payout destination (snapshotted onto each Payout at request time)
    payout_method = db.Column(db.String(16), nullable=True)  # bank | paypal | crypto
    bank_details = db.Column(db.Text, nullable=True)  # JSON string
    paypal_email = db.Column(db.String(255), nullable=True)
    crypto_wallet = db.Column(db.String(255), nullable=True)

    # =====================================================
    # SELLER BALANCE LEDGER
    # Written only by app.ledger as part of an Order/Payout transition.
    # =====================================================
    pending_balance = db.Column(db.Float, nullable=False, default=0.0)
    available_balance = db.Column(db.Float, nullable=False, default=0.0)
    total_earnings = db.Column(db.Float, nullable=False, default=0.0)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def bank_details_dict(self) -> dict:
        raw = (self.bank_details or "").strip()
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def balance_dict(self) -> dict:
        return {
            "pending": float(self.pending_balance or 0.0),
            "available": float(self.available_balance or 0.0),
            "total": float(self.total_earnings or 0.0),
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role or "buyer",
            "payout_method": self.payout_method,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
