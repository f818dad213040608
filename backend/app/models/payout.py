import json
from datetime import datetime

from app.extensions import db


class Payout(db.Model):
    __tablename__ = "payouts"

    id = db.Column(db.Integer, primary_key=True)
    payout_number = db.Column(db.String(40), nullable=False, unique=True, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    amount = db.Column(db.Float, nullable=False, default=0.0)
    currency = db.Column(db.String(8), nullable=False, default="USD")

    method = db.Column(db.String(16), nullable=False)  # bank | paypal | crypto
    # Destination snapshot; later profile edits must not follow into this row.
    method_details = db.Column(db.Text, nullable=False, default="{}")

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)  # PENDING/COMPLETED/PAID/REJECTED

    approved_by = db.Column(db.Integer, nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    rejected_by = db.Column(db.Integer, nullable=True)
    rejected_at = db.Column(db.DateTime, nullable=True)
    processed_at = db.Column(db.DateTime, nullable=True)

    transaction_id = db.Column(db.String(128), nullable=True)
    rejection_reason = db.Column(db.String(400), nullable=True)
    admin_notes = db.Column(db.String(400), nullable=True)

    # Sum of order seller_amounts linked to this payout, and what is left to carry.
    allocated_amount = db.Column(db.Float, nullable=False, default=0.0)
    unallocated_amount = db.Column(db.Float, nullable=False, default=0.0)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def method_details_dict(self) -> dict:
        try:
            data = json.loads(self.method_details or "{}")
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def to_dict(self):
        return {
            "id": int(self.id),
            "payout_number": self.payout_number,
            "seller_id": int(self.seller_id),
            "amount": float(self.amount or 0.0),
            "currency": self.currency,
            "method": self.method,
            "method_details": self.method_details_dict(),
            "status": self.status,
            "approved_by": self.approved_by,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "rejected_by": self.rejected_by,
            "rejected_at": self.rejected_at.isoformat() if self.rejected_at else None,
            "transaction_id": self.transaction_id or "",
            "rejection_reason": self.rejection_reason or "",
            "admin_notes": self.admin_notes or "",
            "allocated_amount": float(self.allocated_amount or 0.0),
            "unallocated_amount": float(self.unallocated_amount or 0.0),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
