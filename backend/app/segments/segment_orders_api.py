from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request, url_for

from app.ledger import attach_crypto_invoice, create_order, get_order_by_number, mark_cancelled
from app.ledger.states import PaymentChannel
from app.utils import coinremitter_client
from app.utils.jwt_utils import current_user

orders_bp = Blueprint("orders_bp", __name__, url_prefix="/api/orders")


def _pick(payload: dict, *names: str) -> str:
    for n in names:
        v = payload.get(n)
        if v not in (None, ""):
            return str(v).strip()
    return ""


def _buyer_info(payload: dict) -> dict:
    u = current_user()
    return {
        "buyer_id": int(u.id) if u else None,
        "customer_name": _pick(payload, "customerName", "customer_name") or (u.name if u else ""),
        "customer_email": _pick(payload, "customerEmail", "customer_email") or (u.email if u else ""),
        "customer_phone": _pick(payload, "customerPhone", "customer_phone"),
        "transaction_ref": _pick(payload, "transactionRef", "transaction_ref"),
        "payment_reference": _pick(payload, "paymentReference", "payment_reference"),
        "payment_provider": _pick(payload, "paymentProvider", "payment_provider"),
        "country": _pick(payload, "country", "paymentCountry"),
        "sender_phone": _pick(payload, "senderPhone", "sender_phone"),
        "payment_notes": _pick(payload, "notes", "paymentNotes", "payment_notes"),
    }


@orders_bp.post("/checkout")
def checkout():
    """Open a PENDING order for a manual or card checkout; free checkouts complete at once."""
    payload = request.get_json(silent=True) or {}
    channel = _pick(payload, "paymentMethod", "payment_method", "channel") or PaymentChannel.MANUAL.value
    if channel == PaymentChannel.CRYPTO.value:
        return jsonify({"message": "Use /api/orders/crypto/checkout for crypto payments"}), 400

    res = create_order(payload.get("items"), channel, _buyer_info(payload))
    if not res.ok:
        return res.to_response()
    return jsonify(res.to_dict()), 201


@orders_bp.post("/crypto/checkout")
def crypto_checkout():
    """Create the order, then a CoinRemitter invoice bound to it."""
    if not coinremitter_client.is_configured():
        return jsonify({"message": "Crypto payments are not configured"}), 503

    payload = request.get_json(silent=True) or {}
    res = create_order(payload.get("items"), PaymentChannel.CRYPTO.value, _buyer_info(payload))
    if not res.ok:
        return res.to_response()
    order = res.data["order"]

    inv = coinremitter_client.create_invoice(
        amount=order["total_amount"],
        currency=order["currency"],
        order_id=order["id"],
        order_number=order["order_number"],
        notify_url=url_for("webhooks_bp.coinremitter_webhook", _external=True),
    )
    if not inv.get("ok") or not inv.get("invoice_id"):
        current_app.logger.error("crypto invoice for %s failed: %s", order["order_number"], inv.get("error"))
        mark_cancelled(order["id"], reason="crypto invoice could not be created")
        status = 504 if inv.get("timeout") else 502
        return jsonify({"message": "Could not create crypto invoice", "error": inv.get("error") or ""}), status

    linked = attach_crypto_invoice(order["id"], inv["invoice_id"])
    if not linked.ok:
        return linked.to_response()

    return jsonify({
        "ok": True,
        "order_id": order["id"],
        "order_number": order["order_number"],
        "invoice_id": inv["invoice_id"],
        "payment_url": inv["url"],
        "amount": order["total_amount"],
        "currency": order["currency"],
    }), 201


@orders_bp.get("/<string:order_number>")
def order_status(order_number: str):
    order = get_order_by_number(order_number)
    if not order:
        return jsonify({"message": "Order not found"}), 404
    return jsonify({
        "ok": True,
        "order_number": order.order_number,
        "status": order.status,
        "is_paid": bool(order.is_paid),
        "payment_method": order.payment_method,
        "crypto_status": order.crypto_status or "",
        "total_amount": float(order.total_amount or 0.0),
        "currency": order.currency,
        "created_at": order.created_at.isoformat() if order.created_at else None,
    }), 200
