from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from app.ledger import match_by_card_reference, match_by_crypto_webhook, match_by_free_text
from app.utils.webhook_signatures import verify_bearer, verify_hmac_sha512

webhooks_bp = Blueprint("webhooks_bp", __name__, url_prefix="/api/webhooks")

CARD_PAID_EVENTS = ("charge.success", "checkout.session.completed", "payment.succeeded")


@webhooks_bp.post("/card")
def card_webhook():
    """Card processor notification, signed with HMAC-SHA512 of the raw body."""
    secret = (current_app.config.get("CARD_WEBHOOK_SECRET") or "").strip()
    if not secret:
        current_app.logger.error("CARD_WEBHOOK_SECRET is not configured")
        return jsonify({"message": "Webhook configuration error"}), 500

    raw = request.get_data() or b""
    sig = request.headers.get("X-Signature") or request.headers.get("X-Paystack-Signature")
    if not verify_hmac_sha512(secret, raw, sig):
        return jsonify({"message": "Invalid signature"}), 400

    payload = request.get_json(silent=True) or {}
    event = (payload.get("event") or payload.get("type") or "").strip()
    if event not in CARD_PAID_EVENTS:
        return jsonify({"ok": True, "ignored": True, "event": event}), 200

    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    obj = data.get("object") if isinstance(data.get("object"), dict) else data
    reference = str(obj.get("reference") or obj.get("client_reference_id") or obj.get("id") or "").strip()
    event_id = str(payload.get("id") or "").strip() or None

    res = match_by_card_reference(reference, event_id=event_id)
    return res.to_response()


@webhooks_bp.post("/coinremitter")
def coinremitter_webhook():
    """CoinRemitter posts form fields: invoice_id, status, custom_data1 (our order id)."""
    data = request.form.to_dict() if request.form else (request.get_json(silent=True) or {})
    invoice_id = (data.get("invoice_id") or "").strip()
    status = (data.get("status") or "").strip()
    custom_order_id = (data.get("custom_data1") or "").strip() or None

    if not invoice_id:
        return jsonify({"message": "invoice_id required"}), 400

    res = match_by_crypto_webhook(invoice_id, status, custom_order_id)
    return res.to_response()


@webhooks_bp.post("/sms")
def sms_webhook():
    """Bank / mobile-wallet SMS forwarded by the gateway app.

    Always answers 200 once the message is accepted, matched or not, so the
    gateway does not keep retrying; unmatched money lands in the operator inbox.
    """
    secret = (current_app.config.get("SMS_WEBHOOK_SECRET") or "").strip()
    if not secret:
        current_app.logger.error("SMS_WEBHOOK_SECRET is not configured")
        return jsonify({"message": "Webhook configuration error"}), 500
    if not verify_bearer(secret, request.headers.get("Authorization")):
        return jsonify({"message": "Unauthorized"}), 401

    payload = request.get_json(silent=True) or {}
    text = (payload.get("text") or payload.get("message") or "").strip()
    sender = (payload.get("sender") or payload.get("from") or "").strip()
    if not text:
        return jsonify({"message": "No SMS body provided"}), 400

    res = match_by_free_text(text, sender=sender)
    if res.ok or res.code == "unparseable_signal":
        return jsonify(res.to_dict()), 200
    return res.to_response()
