from datetime import datetime

from app.extensions import db


class WebhookEvent(db.Model):
    """Replay log for provider deliveries; written in the same transaction as the effect."""

    __tablename__ = "webhook_events"
    __table_args__ = (db.UniqueConstraint("provider", "event_id", name="uq_webhook_events_provider_event"),)

    id = db.Column(db.Integer, primary_key=True)
    provider = db.Column(db.String(32), nullable=False)  # card | coinremitter
    event_id = db.Column(db.String(128), nullable=False)
    order_id = db.Column(db.Integer, nullable=True, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "provider": self.provider,
            "event_id": self.event_id,
            "order_id": self.order_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
