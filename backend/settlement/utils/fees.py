"""Fee and split arithmetic.

Fees are added on top of the payee's asking price for the customer, so the
payee always receives exactly ``unit_price * quantity``. Everything here is
pure: no database, no Flask.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable

from settlement.errors import ConfigurationError, ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Line item types that never produce a payee share.
NO_PAYEE_TYPES = {"giftcard"}
PHYSICAL_TYPES = {"vinyl", "merch"}
DIGITAL_TYPES = {"digital", "track"}


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if value is None or value == "":
        return ZERO
    try:
        # str() first so floats like 0.1 don't drag binary noise along
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Invalid amount: {value!r}") from e


def money(value: Any) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class FeeSchedule:
    platform_fee_rate: Decimal = Decimal("0.01")
    processor_fee_rate: Decimal = Decimal("0.029")
    processor_fixed_fee: Decimal = Decimal("0.30")
    batch_payout_fee_rate: Decimal = Decimal("0.02")

    def __post_init__(self):
        for name in ("platform_fee_rate", "processor_fee_rate", "processor_fixed_fee", "batch_payout_fee_rate"):
            try:
                object.__setattr__(self, name, to_decimal(getattr(self, name)))
            except ValidationError as e:
                raise ConfigurationError(f"{name} is not a number") from e
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must not be negative")
        if self.processor_fee_rate >= 1:
            raise ConfigurationError("processor_fee_rate must be below 100%")
        if self.batch_payout_fee_rate >= 1:
            raise ConfigurationError("batch_payout_fee_rate must be below 100%")

    @classmethod
    def from_config(cls, config) -> "FeeSchedule":
        return cls(
            platform_fee_rate=config.get("PLATFORM_FEE_RATE", "0.01"),
            processor_fee_rate=config.get("PROCESSOR_FEE_RATE", "0.029"),
            processor_fixed_fee=config.get("PROCESSOR_FIXED_FEE", "0.30"),
            batch_payout_fee_rate=config.get("BATCH_PAYOUT_FEE_RATE", "0.02"),
        )


DEFAULT_FEES = FeeSchedule()


@dataclass(frozen=True)
class PaymentSplit:
    customer_price: Decimal
    processor_fee: Decimal
    platform_fee: Decimal
    payee_share: Decimal

    def to_dict(self) -> dict:
        return {
            "customer_price": float(self.customer_price),
            "processor_fee": float(self.processor_fee),
            "platform_fee": float(self.platform_fee),
            "payee_share": float(self.payee_share),
        }


def compute_customer_price(payee_asking_price: Any, quantity: int = 1, fees: FeeSchedule = DEFAULT_FEES) -> PaymentSplit:
    """Solve for the customer price that leaves ``payee_share + platform_fee``
    after the processor takes ``rate * price + fixed``.

    Each component is rounded independently from un-rounded inputs, so the
    rounded parts may disagree with ``customer_price`` by one minor unit.
    """
    price = to_decimal(payee_asking_price)
    qty = int(quantity or 0)
    if price < 0:
        raise ValidationError("Asking price must not be negative")
    if qty < 1:
        raise ValidationError("Quantity must be at least 1")

    payee_share = price * qty
    if payee_share == 0:
        return PaymentSplit(ZERO, ZERO, ZERO, ZERO)

    platform_fee = payee_share * fees.platform_fee_rate
    subtotal_before_fee = payee_share + platform_fee
    customer_price = (subtotal_before_fee + fees.processor_fixed_fee) / (1 - fees.processor_fee_rate)
    processor_fee = customer_price - subtotal_before_fee

    return PaymentSplit(
        customer_price=money(customer_price),
        processor_fee=money(processor_fee),
        platform_fee=money(platform_fee),
        payee_share=money(payee_share),
    )


@dataclass
class PayeeGroup:
    payee_id: str
    payee_type: str
    items: list = field(default_factory=list)
    total_share: Decimal = ZERO


def split_by_payee(line_items: Iterable[Any]) -> dict[str, PayeeGroup]:
    """Group line items by payee, sorted by payee id.

    Items are anything with ``payee_id``, ``payee_type``, ``type`` and
    ``payee_share`` attributes (OrderItem rows or plain objects). Items with
    no payee and gift cards are skipped.
    """
    groups: dict[str, PayeeGroup] = {}
    for item in line_items:
        payee_id = (getattr(item, "payee_id", None) or "").strip()
        if not payee_id or getattr(item, "type", "") in NO_PAYEE_TYPES:
            continue
        group = groups.get(payee_id)
        if group is None:
            group = PayeeGroup(payee_id=payee_id, payee_type=getattr(item, "payee_type", None) or "artist")
            groups[payee_id] = group
        group.items.append(item)
        group.total_share = money(group.total_share + to_decimal(getattr(item, "payee_share", ZERO)))
    return {k: groups[k] for k in sorted(groups)}


def batch_payout_fee(amount: Any, fees: FeeSchedule = DEFAULT_FEES) -> tuple[Decimal, Decimal]:
    """Fee the batch-payout rail takes out of the transfer: ``(fee, net)``."""
    gross = money(amount)
    fee = money(gross * fees.batch_payout_fee_rate)
    return fee, gross - fee


def estimate_processor_fee(gross_total: Any, fees: FeeSchedule = DEFAULT_FEES) -> Decimal:
    """Flat-rate guess for historical orders that never stored a processor fee."""
    gross = to_decimal(gross_total)
    if gross <= 0:
        return ZERO
    return money(gross * fees.processor_fee_rate + fees.processor_fixed_fee)


def estimate_platform_fee(payee_payments: Any, fees: FeeSchedule = DEFAULT_FEES) -> Decimal:
    share = to_decimal(payee_payments)
    if share <= 0:
        return ZERO
    return money(share * fees.platform_fee_rate)
