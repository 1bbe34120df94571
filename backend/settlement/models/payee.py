from datetime import datetime
from decimal import Decimal

from settlement.extensions import db
from settlement.models.order import MONEY


class Payee(db.Model):
    """Payout preferences for an artist, stockist, supplier or crate seller."""

    __tablename__ = "payees"

    payee_id = db.Column(db.String(64), primary_key=True)
    payee_type = db.Column(db.String(16), nullable=False, default="artist")
    name = db.Column(db.String(120), nullable=True)
    email = db.Column(db.String(255), nullable=True)

    payout_method = db.Column(db.String(16), nullable=True)  # stripe/paypal preference
    stripe_connect_id = db.Column(db.String(64), nullable=True)
    stripe_connect_status = db.Column(db.String(24), nullable=True)  # active/pending/restricted
    paypal_email = db.Column(db.String(255), nullable=True)

    lifetime_earnings = db.Column(MONEY, nullable=False, default=Decimal("0.00"))
    last_payout_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    @property
    def stripe_ready(self) -> bool:
        return bool(self.stripe_connect_id) and (self.stripe_connect_status or "") == "active"

    @property
    def paypal_ready(self) -> bool:
        return bool((self.paypal_email or "").strip())

    def to_dict(self):
        return {
            "payee_id": self.payee_id,
            "payee_type": self.payee_type,
            "name": self.name or "",
            "email": self.email or "",
            "payout_method": self.payout_method,
            "stripe_connect_id": self.stripe_connect_id,
            "stripe_connect_status": self.stripe_connect_status,
            "paypal_email": self.paypal_email,
            "lifetime_earnings": float(self.lifetime_earnings or 0),
            "last_payout_at": self.last_payout_at.isoformat() if self.last_payout_at else None,
        }
