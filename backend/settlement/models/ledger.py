import json
from datetime import datetime
from decimal import Decimal

from settlement.extensions import db
from settlement.models.order import MONEY


class LedgerEntry(db.Model):
    """One reporting row per order. order_id is the primary key, so a second
    insert for the same order cannot succeed."""

    __tablename__ = "sales_ledger"

    order_id = db.Column(db.Integer, primary_key=True, autoincrement=False)
    order_number = db.Column(db.String(32), nullable=False, default="")

    timestamp = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    year = db.Column(db.Integer, nullable=False, index=True)
    month = db.Column(db.Integer, nullable=False, index=True)
    day = db.Column(db.Integer, nullable=False)

    customer_id = db.Column(db.String(64), nullable=True)
    customer_email = db.Column(db.String(255), nullable=False, default="")

    subtotal = db.Column(MONEY, nullable=False, default=Decimal("0.00"))
    shipping = db.Column(MONEY, nullable=False, default=Decimal("0.00"))
    gross_total = db.Column(MONEY, nullable=False, default=Decimal("0.00"))
    processor_fee = db.Column(MONEY, nullable=False, default=Decimal("0.00"))
    platform_fee = db.Column(MONEY, nullable=False, default=Decimal("0.00"))
    total_fees = db.Column(MONEY, nullable=False, default=Decimal("0.00"))
    net_revenue = db.Column(MONEY, nullable=False, default=Decimal("0.00"))
    payee_payments = db.Column(MONEY, nullable=False, default=Decimal("0.00"))

    payment_method = db.Column(db.String(16), nullable=False, default="stripe")
    payment_reference = db.Column(db.String(120), nullable=True)
    currency = db.Column(db.String(8), nullable=False, default="GBP")

    item_count = db.Column(db.Integer, nullable=False, default=0)
    has_physical = db.Column(db.Boolean, nullable=False, default=False)
    has_digital = db.Column(db.Boolean, nullable=False, default=False)
    items_json = db.Column(db.Text, nullable=False, default="[]")

    # Provenance for backfilled rows; fees_estimated marks flat-rate guesses.
    migrated_from = db.Column(db.String(32), nullable=True)
    migrated_at = db.Column(db.DateTime, nullable=True)
    fees_estimated = db.Column(db.Boolean, nullable=False, default=False)

    @property
    def items(self) -> list:
        try:
            return json.loads(self.items_json or "[]")
        except ValueError:
            return []

    def to_dict(self):
        return {
            "order_id": int(self.order_id),
            "order_number": self.order_number,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "customer_id": self.customer_id,
            "customer_email": self.customer_email,
            "subtotal": float(self.subtotal or 0),
            "shipping": float(self.shipping or 0),
            "gross_total": float(self.gross_total or 0),
            "processor_fee": float(self.processor_fee or 0),
            "platform_fee": float(self.platform_fee or 0),
            "total_fees": float(self.total_fees or 0),
            "net_revenue": float(self.net_revenue or 0),
            "payee_payments": float(self.payee_payments or 0),
            "payment_method": self.payment_method,
            "payment_reference": self.payment_reference,
            "currency": self.currency,
            "item_count": int(self.item_count or 0),
            "has_physical": bool(self.has_physical),
            "has_digital": bool(self.has_digital),
            "items": self.items,
            "migrated_from": self.migrated_from,
            "fees_estimated": bool(self.fees_estimated),
        }
