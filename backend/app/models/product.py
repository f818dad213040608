from datetime import datetime

from app.extensions import db


class Product(db.Model):
    """Catalog row the checkout prices against. Catalog editing lives elsewhere."""

    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    title = db.Column(db.String(200), nullable=False, default="")
    kind = db.Column(db.String(16), nullable=False, default="product")  # product | course
    price = db.Column(db.Float, nullable=False, default=0.0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "user_id": int(self.user_id),
            "title": self.title or "",
            "kind": self.kind,
            "price": float(self.price or 0.0),
            "is_active": bool(self.is_active),
        }
