from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.ledger import mark_cancelled, mark_paid
from app.ledger.states import OrderStatus, PaymentChannel
from app.models import Order
from app.utils.jwt_utils import current_user, is_admin

manual_orders_bp = Blueprint("manual_orders_bp", __name__, url_prefix="/api/admin/manual-orders")


@manual_orders_bp.get("")
def list_manual_orders():
    u = current_user()
    if not is_admin(u):
        return jsonify({"message": "Admin required"}), 403
    status = (request.args.get("status") or OrderStatus.PENDING.value).strip().upper()
    rows = (
        Order.query.filter_by(payment_method=PaymentChannel.MANUAL.value, status=status)
        .order_by(Order.created_at.desc())
        .limit(300)
        .all()
    )
    return jsonify({"ok": True, "items": [o.to_dict() for o in rows]}), 200


@manual_orders_bp.post("/<int:order_id>/approve")
def approve_manual_order(order_id: int):
    u = current_user()
    if not is_admin(u):
        return jsonify({"message": "Admin required"}), 403
    return mark_paid(order_id, {"verified_by": int(u.id)}).to_response()


@manual_orders_bp.post("/<int:order_id>/reject")
def reject_manual_order(order_id: int):
    u = current_user()
    if not is_admin(u):
        return jsonify({"message": "Admin required"}), 403
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip()
    if not reason:
        return jsonify({"message": "reason required"}), 400
    return mark_cancelled(order_id, reason=reason, actor_id=int(u.id)).to_response()
