from __future__ import annotations

import functools
from dataclasses import dataclass, field
from typing import Any, Callable

from flask import current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from app.extensions import db
from app.ledger.errors import LedgerError, StorageError


@dataclass
class OperationResult:
    """Structured outcome of a public ledger operation.

    ``changed`` says whether anything was written. ``retry_safe`` tells the
    caller a retry cannot double-apply (true for every idempotent or guarded
    operation).
    """

    ok: bool
    code: str = "ok"
    message: str = ""
    changed: bool = False
    retry_safe: bool = True
    http_status: int = 200
    data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "code": self.code,
            "message": self.message,
            "changed": self.changed,
            "retry_safe": self.retry_safe,
            **self.data,
        }

    def to_response(self):
        return jsonify(self.to_dict()), self.http_status


@dataclass
class MatchResult:
    outcome: str
    matched_order_numbers: list[str] = field(default_factory=list)
    already_confirmed_order_numbers: list[str] = field(default_factory=list)
    unmatched_refs: list[str] = field(default_factory=list)
    ambiguous_refs: list[str] = field(default_factory=list)
    extracted_refs: list[str] = field(default_factory=list)
    signal_id: int | None = None

    @property
    def matched_count(self) -> int:
        return len(self.matched_order_numbers)

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome,
            "matchedCount": self.matched_count,
            "matchedOrderNumbers": list(self.matched_order_numbers),
            "alreadyConfirmedOrderNumbers": list(self.already_confirmed_order_numbers),
            "unmatchedRefs": list(self.unmatched_refs),
            "ambiguousRefs": list(self.ambiguous_refs),
            "extractedRefs": list(self.extracted_refs),
            "signalId": self.signal_id,
        }


def ledger_operation(name: str, *, idempotent: bool = True) -> Callable:
    """Boundary for a public ledger operation.

    The wrapped function returns a dict (``changed`` key optional) or raises a
    LedgerError; either way the caller gets an OperationResult and the session
    is left clean.
    """

    def decorator(fn: Callable[..., dict]) -> Callable[..., OperationResult]:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> OperationResult:
            log = current_app.logger
            try:
                data = fn(*args, **kwargs) or {}
            except LedgerError as e:
                db.session.rollback()
                log.warning("%s rejected: %s %s", name, e.code, e.message)
                return OperationResult(
                    ok=False,
                    code=e.code,
                    message=e.message,
                    changed=False,
                    retry_safe=True,
                    http_status=e.http_status,
                    data=dict(e.details),
                )
            except SQLAlchemyError as e:
                db.session.rollback()
                log.exception("%s failed in storage", name)
                err = StorageError(f"{name} failed: {e.__class__.__name__}")
                return OperationResult(
                    ok=False,
                    code=err.code,
                    message=err.message,
                    changed=False,
                    retry_safe=idempotent,
                    http_status=err.http_status,
                )
            changed = bool(data.pop("changed", True))
            return OperationResult(ok=True, changed=changed, retry_safe=idempotent, data=data)

        wrapper.raw = fn
        return wrapper

    return decorator
