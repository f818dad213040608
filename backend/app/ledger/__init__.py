from .errors import (  # noqa: F401
    AlreadyProcessedError,
    InsufficientFundsError,
    InvalidStateError,
    LedgerError,
    OrderNotFoundError,
    PayoutNotFoundError,
    StorageError,
    UnparseableSignalError,
    UpstreamTimeoutError,
    ValidationError,
)
from .results import MatchResult, OperationResult  # noqa: F401

from .orders import (  # noqa: F401
    attach_crypto_invoice,
    create_order,
    get_order_by_number,
    mark_cancelled,
    mark_paid,
    sweep_matured_holdings,
)
from .reconciliation import (  # noqa: F401
    list_signals,
    match_by_card_reference,
    match_by_crypto_webhook,
    match_by_explicit_references,
    match_by_free_text,
    resolve_signal,
)
from .payouts import (  # noqa: F401
    apply_admin_action,
    approve_payout,
    get_seller_balance,
    list_payouts,
    reject_payout,
    request_payout,
    update_payout_settings,
)
