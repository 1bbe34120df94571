import json
from datetime import datetime
from decimal import Decimal

from settlement.extensions import db
from settlement.models.order import MONEY


class Refund(db.Model):
    __tablename__ = "refunds"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    amount = db.Column(MONEY, nullable=False, default=Decimal("0.00"))
    currency = db.Column(db.String(8), nullable=False, default="GBP")
    reason = db.Column(db.String(64), nullable=False, default="requested_by_customer")

    method = db.Column(db.String(16), nullable=False)  # stripe/paypal
    external_ref = db.Column(db.String(120), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="completed")  # completed/failed
    failure_reason = db.Column(db.String(500), nullable=True)

    is_full_refund = db.Column(db.Boolean, nullable=False, default=False)
    refund_items = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "order_id": int(self.order_id),
            "amount": float(self.amount or 0),
            "currency": self.currency,
            "reason": self.reason,
            "method": self.method,
            "external_ref": self.external_ref or "",
            "status": self.status,
            "failure_reason": self.failure_reason,
            "is_full_refund": bool(self.is_full_refund),
            "refund_items": json.loads(self.refund_items) if self.refund_items else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
