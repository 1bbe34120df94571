from datetime import datetime
from decimal import Decimal

from settlement.extensions import db

MONEY = db.Numeric(12, 2)


def _f(value) -> float:
    return float(value or 0)


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    customer_email = db.Column(db.String(255), nullable=False, index=True)
    customer_first_name = db.Column(db.String(120), nullable=False, default="")
    customer_last_name = db.Column(db.String(120), nullable=False, default="")
    customer_user_id = db.Column(db.String(64), nullable=True, index=True)

    shipping_address1 = db.Column(db.String(200), nullable=True)
    shipping_address2 = db.Column(db.String(200), nullable=True)
    shipping_city = db.Column(db.String(120), nullable=True)
    shipping_postcode = db.Column(db.String(32), nullable=True)
    shipping_country = db.Column(db.String(64), nullable=True)

    # Totals. processor_fees/platform_fees are NULL on orders that predate fee tracking.
    subtotal = db.Column(MONEY, nullable=False, default=Decimal("0.00"))
    shipping = db.Column(MONEY, nullable=False, default=Decimal("0.00"))
    processor_fees = db.Column(MONEY, nullable=True)
    platform_fees = db.Column(MONEY, nullable=True)
    payee_payments = db.Column(MONEY, nullable=False, default=Decimal("0.00"))
    currency = db.Column(db.String(8), nullable=False, default="GBP")

    payment_method = db.Column(db.String(16), nullable=False, default="stripe")  # stripe/paypal/free
    payment_reference = db.Column(db.String(120), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default="processing")  # processing/completed/cancelled
    is_test = db.Column(db.Boolean, nullable=False, default=False)

    # Refund state. refund_version guards the read-compute-write on refunded_amount.
    refund_status = db.Column(db.String(16), nullable=False, default="none")  # none/partial/full
    refunded_amount = db.Column(MONEY, nullable=False, default=Decimal("0.00"))
    refund_version = db.Column(db.Integer, nullable=False, default=0)
    last_refund_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    items = db.relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    @property
    def gross_total(self) -> Decimal:
        return Decimal(self.subtotal or 0) + Decimal(self.shipping or 0)

    @property
    def has_physical(self) -> bool:
        return any(i.is_physical for i in self.items)

    @property
    def has_digital(self) -> bool:
        return any(i.type in ("digital", "track") for i in self.items)

    def to_dict(self, include_items: bool = True):
        d = {
            "id": int(self.id),
            "order_number": self.order_number,
            "customer": {
                "email": self.customer_email,
                "first_name": self.customer_first_name or "",
                "last_name": self.customer_last_name or "",
                "user_id": self.customer_user_id,
            },
            "totals": {
                "subtotal": _f(self.subtotal),
                "shipping": _f(self.shipping),
                "total": _f(self.gross_total),
                "processor_fees": _f(self.processor_fees) if self.processor_fees is not None else None,
                "platform_fees": _f(self.platform_fees) if self.platform_fees is not None else None,
                "payee_payments": _f(self.payee_payments),
            },
            "currency": self.currency or "GBP",
            "payment_method": self.payment_method,
            "payment_reference": self.payment_reference,
            "status": self.status,
            "refund_status": self.refund_status,
            "refunded_amount": _f(self.refunded_amount),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_items:
            d["items"] = [i.to_dict() for i in self.items]
        return d


class OrderItem(db.Model):
    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, default="digital")  # digital/track/vinyl/merch/giftcard
    product_id = db.Column(db.String(64), nullable=True, index=True)
    title = db.Column(db.String(200), nullable=False, default="")

    payee_id = db.Column(db.String(64), nullable=True, index=True)
    payee_type = db.Column(db.String(16), nullable=True)  # artist/supplier/seller

    unit_price = db.Column(MONEY, nullable=False, default=Decimal("0.00"))
    quantity = db.Column(db.Integer, nullable=False, default=1)

    # Payment split (per line, already multiplied by quantity)
    customer_price = db.Column(MONEY, nullable=False, default=Decimal("0.00"))
    processor_fee = db.Column(MONEY, nullable=False, default=Decimal("0.00"))
    platform_fee = db.Column(MONEY, nullable=False, default=Decimal("0.00"))
    payee_share = db.Column(MONEY, nullable=False, default=Decimal("0.00"))

    restocked_at = db.Column(db.DateTime, nullable=True)

    order = db.relationship("Order", back_populates="items")

    @property
    def is_physical(self) -> bool:
        return self.type in ("vinyl", "merch")

    def to_dict(self):
        return {
            "id": int(self.id),
            "type": self.type,
            "product_id": self.product_id,
            "title": self.title or "",
            "payee_id": self.payee_id,
            "payee_type": self.payee_type,
            "unit_price": _f(self.unit_price),
            "quantity": int(self.quantity or 0),
            "payment_split": {
                "customer_price": _f(self.customer_price),
                "processor_fee": _f(self.processor_fee),
                "platform_fee": _f(self.platform_fee),
                "payee_share": _f(self.payee_share),
            },
            "restocked": self.restocked_at is not None,
        }
