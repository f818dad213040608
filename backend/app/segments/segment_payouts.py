from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.ledger import (
    apply_admin_action,
    approve_payout,
    get_seller_balance,
    list_payouts,
    reject_payout,
    request_payout,
    update_payout_settings,
)
from app.utils.idempotency import lookup_response, store_response
from app.utils.jwt_utils import current_user, is_admin

seller_bp = Blueprint("seller_bp", __name__, url_prefix="/api/seller")
admin_payouts_bp = Blueprint("admin_payouts_bp", __name__, url_prefix="/api/admin/payouts")


# -----------------------------
# Seller
# -----------------------------
@seller_bp.get("/balance")
def balance():
    u = current_user()
    if not u:
        return jsonify({"message": "Unauthorized"}), 401
    return jsonify({"ok": True, "balance": get_seller_balance(int(u.id))}), 200


@seller_bp.get("/payout-settings")
def get_payout_settings():
    u = current_user()
    if not u:
        return jsonify({"message": "Unauthorized"}), 401
    return jsonify({
        "ok": True,
        "payout_method": u.payout_method,
        "bank_details": u.bank_details_dict(),
        "paypal_email": u.paypal_email or "",
        "crypto_wallet": u.crypto_wallet or "",
    }), 200


@seller_bp.post("/payout-settings")
def save_payout_settings():
    u = current_user()
    if not u:
        return jsonify({"message": "Unauthorized"}), 401
    data = request.get_json(silent=True) or {}
    method = data.get("payoutMethod") or data.get("payout_method") or ""
    details = {
        "bank_details": data.get("bankDetails") or data.get("bank_details"),
        "paypal_email": data.get("paypalEmail") or data.get("paypal_email"),
        "crypto_wallet": data.get("cryptoWallet") or data.get("crypto_wallet"),
    }
    return update_payout_settings(int(u.id), method, details).to_response()


@seller_bp.get("/payouts")
def my_payouts():
    u = current_user()
    if not u:
        return jsonify({"message": "Unauthorized"}), 401
    rows = list_payouts(seller_id=int(u.id))
    return jsonify({"ok": True, "items": [p.to_dict() for p in rows]}), 200


@seller_bp.post("/payouts")
def create_payout():
    """Request a payout. Honour an Idempotency-Key header so client retries never double-lock funds."""
    u = current_user()
    if not u:
        return jsonify({"message": "Unauthorized"}), 401
    data = request.get_json(silent=True) or {}

    idem = lookup_response(int(u.id), "/api/seller/payouts", data)
    if idem and idem[0] in ("hit", "conflict"):
        return jsonify(idem[1]), idem[2]

    res = request_payout(int(u.id), data.get("amount"))
    body = res.to_dict()
    status = 201 if res.ok else res.http_status
    if idem and idem[0] == "miss":
        store_response(idem[1], body, status)
    return jsonify(body), status


# -----------------------------
# Admin
# -----------------------------
@admin_payouts_bp.get("")
def admin_list_payouts():
    u = current_user()
    if not is_admin(u):
        return jsonify({"message": "Admin required"}), 403
    status = (request.args.get("status") or "PENDING").strip()
    rows = list_payouts(status=None if status.lower() == "all" else status, limit=300)
    return jsonify({"ok": True, "items": [p.to_dict() for p in rows]}), 200


@admin_payouts_bp.post("/<int:payout_id>/approve")
def admin_approve(payout_id: int):
    u = current_user()
    if not is_admin(u):
        return jsonify({"message": "Admin required"}), 403
    data = request.get_json(silent=True) or {}
    res = approve_payout(
        payout_id,
        int(u.id),
        transaction_id=data.get("transactionId") or data.get("transaction_id"),
        notes=data.get("notes") or data.get("adminNotes"),
    )
    return res.to_response()


@admin_payouts_bp.post("/<int:payout_id>/reject")
def admin_reject(payout_id: int):
    u = current_user()
    if not is_admin(u):
        return jsonify({"message": "Admin required"}), 403
    data = request.get_json(silent=True) or {}
    return reject_payout(payout_id, int(u.id), data.get("reason") or "").to_response()


@admin_payouts_bp.post("/action")
def admin_action():
    u = current_user()
    if not is_admin(u):
        return jsonify({"message": "Admin required"}), 403
    return apply_admin_action(request.get_json(silent=True) or {}, int(u.id)).to_response()
