from app.extensions import db


class OrderItem(db.Model):
    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)

    item_type = db.Column(db.String(16), nullable=False, default="product")
    quantity = db.Column(db.Integer, nullable=False, default=1)
    # price snapshot at checkout
    price = db.Column(db.Float, nullable=False, default=0.0)

    def to_dict(self):
        return {
            "id": int(self.id),
            "product_id": int(self.product_id) if self.product_id is not None else None,
            "item_type": self.item_type,
            "quantity": int(self.quantity or 1),
            "price": float(self.price or 0.0),
        }
