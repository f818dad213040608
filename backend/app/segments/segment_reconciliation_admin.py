from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.ledger import list_signals, match_by_explicit_references, match_by_free_text, resolve_signal
from app.utils.jwt_utils import current_user, is_admin

recon_bp = Blueprint("recon_bp", __name__, url_prefix="/api/admin/reconcile")


@recon_bp.post("")
def run_recon():
    """Paste references (``{"references": [...]}``) or raw transfer text (``{"text": "..."}``)."""
    u = current_user()
    if not is_admin(u):
        return jsonify({"message": "Admin required"}), 403

    data = request.get_json(silent=True) or {}
    refs = data.get("references")
    if refs is None:
        refs = data.get("refs")
    text = (data.get("text") or "").strip()

    if refs is not None:
        res = match_by_explicit_references(refs, verified_by=int(u.id))
    elif text:
        res = match_by_free_text(text, sender=f"admin:{int(u.id)}", source="admin_text")
    else:
        return jsonify({"message": "references or text required"}), 400
    return res.to_response()


@recon_bp.get("/signals")
def signals():
    u = current_user()
    if not is_admin(u):
        return jsonify({"message": "Admin required"}), 403
    open_only = (request.args.get("all") or "").strip().lower() not in ("1", "true", "yes")
    try:
        limit = int(request.args.get("limit") or 100)
    except ValueError:
        limit = 100
    rows = list_signals(open_only=open_only, limit=min(max(limit, 1), 500))
    return jsonify({"ok": True, "items": [s.to_dict() for s in rows]}), 200


@recon_bp.post("/signals/<int:signal_id>/resolve")
def resolve(signal_id: int):
    u = current_user()
    if not is_admin(u):
        return jsonify({"message": "Admin required"}), 403
    return resolve_signal(signal_id, int(u.id)).to_response()
