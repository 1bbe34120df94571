from .order import Order, OrderItem  # noqa: F401
from .payee import Payee  # noqa: F401
from .obligation import PayeeObligation  # noqa: F401
from .payout import Payout  # noqa: F401
from .ledger import LedgerEntry  # noqa: F401
from .refund import Refund  # noqa: F401
from .rating import RatingAggregate, UserRating  # noqa: F401
from .stock import StockLevel, StockMovement  # noqa: F401

from .audit_log import AuditLog  # noqa: F401

from .idempotency_key import IdempotencyKey  # noqa: F401
