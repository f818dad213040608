"""Error taxonomy for ledger operations.

Each error carries a stable ``code`` (what API callers switch on) and the HTTP
status the segments answer with. Operations raise these internally; the
``ledger_operation`` boundary turns them into an ``OperationResult``.
"""

from __future__ import annotations


class LedgerError(Exception):
    code = "ledger_error"
    http_status = 400

    def __init__(self, message: str = "", **details):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details


class ValidationError(LedgerError):
    code = "validation_error"
    http_status = 400


class InvalidStateError(LedgerError):
    code = "invalid_state"
    http_status = 409


class AlreadyProcessedError(LedgerError):
    code = "already_processed"
    http_status = 409


class InsufficientFundsError(LedgerError):
    code = "insufficient_funds"
    http_status = 400


class OrderNotFoundError(LedgerError):
    code = "order_not_found"
    http_status = 404


class PayoutNotFoundError(LedgerError):
    code = "payout_not_found"
    http_status = 404


class UnparseableSignalError(LedgerError):
    code = "unparseable_signal"
    http_status = 422


class UpstreamTimeoutError(LedgerError):
    """An external lookup did not answer; nothing was written."""

    code = "upstream_unavailable"
    http_status = 504


class StorageError(LedgerError):
    code = "storage_error"
    http_status = 503
