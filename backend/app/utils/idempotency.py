from __future__ import annotations

import hashlib
import json
from typing import Any

from flask import request
from sqlalchemy.exc import IntegrityError

from app.extensions import db
from app.models import IdempotencyKey


def _hash_request(payload: Any) -> str:
    raw = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


def get_idempotency_key() -> str | None:
    k = request.headers.get("Idempotency-Key") or request.headers.get("X-Idempotency-Key")
    if not k or not k.strip():
        return None
    return k.strip()[:128]


def lookup_response(user_id: int | None, route: str, payload: Any):
    """First-response replay for client retries.

    Returns None without a header, ("hit", body, status) for a stored
    response, ("conflict", body, 409) when the key was used for a different
    request, and ("miss", row, 0) after reserving the key.
    """
    k = get_idempotency_key()
    if not k:
        return None

    rh = _hash_request(payload)
    uid = int(user_id) if user_id is not None else None
    row = IdempotencyKey.query.filter_by(user_id=uid, key=k).first()
    if row:
        if (row.request_hash and row.request_hash != rh) or (row.route and row.route != route):
            return ("conflict", {"ok": False, "message": "Idempotency key reuse with different payload"}, 409)
        if row.response_json:
            return ("hit", json.loads(row.response_json), int(row.status_code or 200))
        return ("conflict", {"ok": False, "message": "Request with this idempotency key is still in progress"}, 409)

    row = IdempotencyKey(key=k, user_id=uid, route=route, request_hash=rh)
    db.session.add(row)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return ("conflict", {"ok": False, "message": "Request with this idempotency key is still in progress"}, 409)
    return ("miss", row, 0)


def store_response(row: IdempotencyKey, response_json: Any, status_code: int):
    row.response_json = json.dumps(response_json, default=str)
    row.status_code = int(status_code)
    db.session.add(row)
    db.session.commit()
