from .user import User  # noqa: F401
from .product import Product  # noqa: F401
from .payout import Payout  # noqa: F401
from .order import Order  # noqa: F401
from .order_item import OrderItem  # noqa: F401

from .balance_entry import BalanceEntry  # noqa: F401
from .ledger_event import LedgerEvent  # noqa: F401
from .reconciliation_signal import ReconciliationSignal  # noqa: F401

from .webhook_event import WebhookEvent  # noqa: F401
from .audit_log import AuditLog  # noqa: F401
from .idempotency_key import IdempotencyKey  # noqa: F401
