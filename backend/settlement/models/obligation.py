from datetime import datetime
from decimal import Decimal

from settlement.extensions import db
from settlement.models.order import MONEY

# pending -> processing -> completed
# processing -> retry_pending -> processing ...
# pending/retry_pending -> awaiting_connect (no usable rail yet)
# pending -> cleared (nothing to pay)
# pending/retry_pending/awaiting_connect -> cancelled (order fully refunded)
DISPATCHABLE_STATUSES = ("pending", "retry_pending", "awaiting_connect")
TERMINAL_STATUSES = ("completed", "cleared", "cancelled")


class PayeeObligation(db.Model):
    __tablename__ = "payee_obligations"
    __table_args__ = (db.UniqueConstraint("order_id", "payee_id", name="uq_obligation_order_payee"),)

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    payee_id = db.Column(db.String(64), nullable=False, index=True)
    payee_type = db.Column(db.String(16), nullable=False, default="artist")  # artist/supplier/seller

    amount = db.Column(MONEY, nullable=False, default=Decimal("0.00"))
    currency = db.Column(db.String(8), nullable=False, default="GBP")

    status = db.Column(db.String(24), nullable=False, default="pending", index=True)
    payout_method = db.Column(db.String(16), nullable=True)  # stripe/paypal
    external_ref = db.Column(db.String(120), nullable=True)
    failure_reason = db.Column(db.String(500), nullable=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self):
        return {
            "id": int(self.id),
            "order_id": int(self.order_id),
            "payee_id": self.payee_id,
            "payee_type": self.payee_type,
            "amount": float(self.amount or 0),
            "currency": self.currency,
            "status": self.status,
            "payout_method": self.payout_method,
            "external_ref": self.external_ref,
            "failure_reason": self.failure_reason,
            "attempts": int(self.attempts or 0),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
