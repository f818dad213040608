from datetime import datetime

from app.extensions import db


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(40), nullable=False, unique=True, index=True)

    buyer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    customer_name = db.Column(db.String(120), nullable=False, default="")
    customer_email = db.Column(db.String(255), nullable=False, default="")
    customer_phone = db.Column(db.String(32), nullable=False, default="")

    # Financials are fixed at checkout: seller_amount + platform_fee == total_amount
    total_amount = db.Column(db.Float, nullable=False, default=0.0)
    platform_fee = db.Column(db.Float, nullable=False, default=0.0)
    seller_amount = db.Column(db.Float, nullable=False, default=0.0)
    currency = db.Column(db.String(8), nullable=False, default="USD")

    # PENDING -> PAID | COMPLETED | CANCELLED
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    # pending -> available -> paid_out
    payout_status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    payment_method = db.Column(db.String(16), nullable=False, default="manual", index=True)
    payment_provider = db.Column(db.String(64), nullable=True)
    payment_country = db.Column(db.String(8), nullable=True)

    # manual channel
    transaction_ref = db.Column(db.String(80), nullable=True, index=True)
    sender_phone = db.Column(db.String(32), nullable=True)
    payment_notes = db.Column(db.String(400), nullable=True)

    # card channel (checkout session reference)
    payment_reference = db.Column(db.String(128), nullable=True, unique=True)

    # crypto channel
    crypto_invoice_id = db.Column(db.String(128), nullable=True, unique=True)
    crypto_status = db.Column(db.String(32), nullable=True)

    is_paid = db.Column(db.Boolean, nullable=False, default=False)
    paid_at = db.Column(db.DateTime, nullable=True)
    verified_at = db.Column(db.DateTime, nullable=True)
    verified_by = db.Column(db.Integer, nullable=True)
    rejection_reason = db.Column(db.String(400), nullable=True)

    available_at = db.Column(db.DateTime, nullable=False, index=True)
    paid_out_at = db.Column(db.DateTime, nullable=True)
    payout_id = db.Column(db.Integer, db.ForeignKey("payouts.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    items = db.relationship("OrderItem", backref="order", lazy="selectin", cascade="all, delete-orphan")

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "order_number": self.order_number,
            "buyer_id": int(self.buyer_id) if self.buyer_id is not None else None,
            "seller_id": int(self.seller_id),
            "customer_name": self.customer_name or "",
            "customer_email": self.customer_email or "",
            "total_amount": float(self.total_amount or 0.0),
            "platform_fee": float(self.platform_fee or 0.0),
            "seller_amount": float(self.seller_amount or 0.0),
            "currency": self.currency,
            "status": self.status,
            "payout_status": self.payout_status,
            "payment_method": self.payment_method,
            "payment_provider": self.payment_provider or "",
            "transaction_ref": self.transaction_ref or "",
            "payment_reference": self.payment_reference or "",
            "crypto_invoice_id": self.crypto_invoice_id or "",
            "crypto_status": self.crypto_status or "",
            "is_paid": bool(self.is_paid),
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "verified_at": self.verified_at.isoformat() if self.verified_at else None,
            "verified_by": self.verified_by,
            "rejection_reason": self.rejection_reason or "",
            "available_at": self.available_at.isoformat() if self.available_at else None,
            "paid_out_at": self.paid_out_at.isoformat() if self.paid_out_at else None,
            "payout_id": int(self.payout_id) if self.payout_id is not None else None,
            "items": [i.to_dict() for i in (self.items or [])],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
