from datetime import datetime
from decimal import Decimal

from settlement.extensions import db
from settlement.models.order import MONEY


class Payout(db.Model):
    """One executed (or attempted) money movement. Rows are never updated."""

    __tablename__ = "payouts"

    id = db.Column(db.Integer, primary_key=True)
    obligation_id = db.Column(db.Integer, db.ForeignKey("payee_obligations.id"), nullable=False, index=True)
    payee_id = db.Column(db.String(64), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    gross_amount = db.Column(MONEY, nullable=False, default=Decimal("0.00"))
    rail_fee = db.Column(MONEY, nullable=False, default=Decimal("0.00"))
    amount = db.Column(MONEY, nullable=False, default=Decimal("0.00"))  # what the payee receives
    currency = db.Column(db.String(8), nullable=False, default="GBP")

    method = db.Column(db.String(16), nullable=False)  # stripe/paypal
    external_ref = db.Column(db.String(120), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="completed")  # completed/failed
    failure_reason = db.Column(db.String(500), nullable=True)
    timed_out = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "obligation_id": int(self.obligation_id),
            "payee_id": self.payee_id,
            "order_id": int(self.order_id),
            "gross_amount": float(self.gross_amount or 0),
            "rail_fee": float(self.rail_fee or 0),
            "amount": float(self.amount or 0),
            "currency": self.currency,
            "method": self.method,
            "external_ref": self.external_ref or "",
            "status": self.status,
            "failure_reason": self.failure_reason,
            "timed_out": bool(self.timed_out),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
