from __future__ import annotations

import hashlib
import hmac


def verify_hmac_sha512(secret: str, raw_body: bytes, signature_header: str | None) -> bool:
    if not secret or not signature_header:
        return False
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()
    return hmac.compare_digest(digest, signature_header.strip())


def verify_bearer(secret: str, auth_header: str | None) -> bool:
    if not secret or not auth_header:
        return False
    return hmac.compare_digest(auth_header.strip(), f"Bearer {secret}")
