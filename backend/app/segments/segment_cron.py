from __future__ import annotations

import hmac

from flask import Blueprint, current_app, jsonify, request

from app.jobs.balance_auditor import audit_seller_balances
from app.jobs.event_dispatcher import dispatch_pending_events
from app.jobs.holding_sweep import run_holding_sweep
from app.utils.jwt_utils import current_user, get_bearer_token, is_admin

cron_bp = Blueprint("cron_bp", __name__, url_prefix="/api/cron")


def _authorized() -> bool:
    """External cron with CRON_SECRET as bearer token, or an admin JWT."""
    cron_secret = (current_app.config.get("CRON_SECRET") or "").strip()
    bearer = get_bearer_token(request.headers.get("Authorization", ""))
    if cron_secret and bearer and hmac.compare_digest(bearer, cron_secret):
        return True
    return is_admin(current_user())


def _limit(default: int) -> int:
    payload = request.get_json(silent=True) or {}
    try:
        return max(1, min(int(payload.get("limit") or default), 5000))
    except (TypeError, ValueError):
        return default


@cron_bp.post("/sweep-holdings")
def sweep_holdings():
    if not _authorized():
        return jsonify({"message": "Unauthorized"}), 401
    res = run_holding_sweep(limit=_limit(500))
    return jsonify(res), 200 if res.get("ok") else 503


@cron_bp.post("/dispatch-events")
def dispatch_events():
    if not _authorized():
        return jsonify({"message": "Unauthorized"}), 401
    return jsonify(dispatch_pending_events(limit=_limit(100))), 200


@cron_bp.post("/audit-balances")
def audit_balances():
    if not _authorized():
        return jsonify({"message": "Unauthorized"}), 401
    return jsonify(audit_seller_balances(limit=_limit(500))), 200
