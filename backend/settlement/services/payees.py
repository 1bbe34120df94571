from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from settlement.errors import NotFoundError
from settlement.extensions import db
from settlement.models import Payee


def get_payee(payee_id: str) -> Payee:
    p = db.session.get(Payee, str(payee_id))
    if p is None:
        raise NotFoundError(f"Payee {payee_id} not found", payee_id=payee_id)
    return p


def find_payee(payee_id: str) -> Payee | None:
    return db.session.get(Payee, str(payee_id))


def increment_earnings(payee_id: str, amount: Decimal) -> None:
    """Add to lifetime earnings with a single UPDATE so concurrent payouts cannot lose an increment.

    Does not commit; the caller owns the transaction.
    """
    now = datetime.utcnow()
    db.session.query(Payee).filter(Payee.payee_id == str(payee_id)).update(
        {
            Payee.lifetime_earnings: Payee.lifetime_earnings + Decimal(amount),
            Payee.last_payout_at: now,
            Payee.updated_at: now,
        },
        synchronize_session=False,
    )
