import time
from typing import Optional, Dict, Any

import jwt
from flask import current_app, request

from app.extensions import db


def _secret() -> str:
    return current_app.config.get("SECRET_KEY") or "dev-secret"


def create_access_token(user_id: int, ttl_seconds: int = 60 * 60 * 24 * 7) -> str:
    now = int(time.time())
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + ttl_seconds,
        "type": "access",
    }
    return jwt.encode(payload, _secret(), algorithm="HS256")


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    try:
        return jwt.decode(token, _secret(), algorithms=["HS256"])
    except jwt.PyJWTError:
        return None


def get_bearer_token(auth_header: str) -> Optional[str]:
    if not auth_header:
        return None
    parts = auth_header.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


def current_user():
    """User behind the request's bearer access token, or None."""
    from app.models import User

    tok = get_bearer_token(request.headers.get("Authorization", ""))
    if not tok:
        return None
    payload = decode_token(tok)
    if not payload or payload.get("type") != "access":
        return None
    try:
        uid = int(payload.get("sub"))
    except (TypeError, ValueError):
        return None
    return db.session.get(User, uid)


def is_admin(u) -> bool:
    return bool(u) and (u.role or "").strip().lower() == "admin"
