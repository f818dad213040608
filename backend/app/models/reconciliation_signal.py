from __future__ import annotations

import json
from datetime import datetime

from app.extensions import db


def _load_list(raw: str | None) -> list:
    try:
        data = json.loads(raw or "[]")
    except ValueError:
        return []
    return data if isinstance(data, list) else []


class ReconciliationSignal(db.Model):
    """Every external payment signal the matcher saw, and what it could place."""

    __tablename__ = "reconciliation_signals"

    id = db.Column(db.Integer, primary_key=True)

    source = db.Column(db.String(16), nullable=False, index=True)  # references | admin_text | sms | card | crypto
    raw_text = db.Column(db.Text, nullable=True)
    sender = db.Column(db.String(64), nullable=True)

    extracted_refs = db.Column(db.Text, nullable=False, default="[]")
    matched_order_numbers = db.Column(db.Text, nullable=False, default="[]")
    already_confirmed_order_numbers = db.Column(db.Text, nullable=False, default="[]")
    unmatched_refs = db.Column(db.Text, nullable=False, default="[]")
    ambiguous_refs = db.Column(db.Text, nullable=False, default="[]")

    # matched | partial | unmatched | ambiguous | unparseable | already_confirmed
    outcome = db.Column(db.String(24), nullable=False, index=True)

    resolved_at = db.Column(db.DateTime, nullable=True)
    resolved_by = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    @property
    def needs_operator(self) -> bool:
        return self.outcome in ("partial", "unmatched", "ambiguous", "unparseable")

    def to_dict(self):
        return {
            "id": int(self.id),
            "source": self.source,
            "raw_text": self.raw_text or "",
            "sender": self.sender or "",
            "extracted_refs": _load_list(self.extracted_refs),
            "matched_order_numbers": _load_list(self.matched_order_numbers),
            "already_confirmed_order_numbers": _load_list(self.already_confirmed_order_numbers),
            "unmatched_refs": _load_list(self.unmatched_refs),
            "ambiguous_refs": _load_list(self.ambiguous_refs),
            "outcome": self.outcome,
            "needs_operator": self.needs_operator,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "resolved_by": self.resolved_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
