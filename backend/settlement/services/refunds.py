"""Refund reconciler.

The refundable balance is reserved on the order (refunded_amount, guarded by
refund_version) before the rail is asked to move money, so concurrent refunds
can never add up to more than the customer paid.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from flask import current_app
from sqlalchemy import func

from settlement.errors import ConfigurationError, ConflictError, NotFoundError, RailError, ValidationError
from settlement.extensions import db
from settlement.models import Order, OrderItem, PayeeObligation, Refund
from settlement.models.obligation import DISPATCHABLE_STATUSES
from settlement.rails import get_rails
from settlement.services.inventory import get_inventory
from settlement.utils.fees import ZERO, money
from settlement.utils.notify import notify


@dataclass
class RefundOutcome:
    order: Order
    refund: Refund

    @property
    def ok(self) -> bool:
        return self.refund.status == "completed"

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "refund": self.refund.to_dict(),
            "refund_status": self.order.refund_status,
            "refunded_amount": float(self.order.refunded_amount or 0),
        }


def _load_order(order_id: int) -> Order:
    order = db.session.get(Order, int(order_id), populate_existing=True)
    if order is None:
        raise NotFoundError(f"Order {order_id} not found", order_id=order_id)
    return order


def _requested_amount(amount: Any, remaining: Decimal) -> Decimal:
    if amount is None or (isinstance(amount, str) and amount.strip().lower() in ("", "full")):
        return remaining
    return money(amount)


def _reserve(order_id: int, amount: Any) -> tuple[Decimal, Decimal, int]:
    """Move the refund amount into refunded_amount. Returns (amount, refunded
    before, new version). Raises ValidationError if it does not fit."""
    max_retries = int(current_app.config.get("CONFLICT_MAX_RETRIES", 5))
    backoff = float(current_app.config.get("CONFLICT_BACKOFF_SECONDS", 0.05))

    for attempt in range(max_retries):
        order = _load_order(order_id)
        if order.refund_status == "full":
            raise ValidationError("Order already fully refunded", order_id=int(order.id))
        gross = money(order.gross_total)
        before = money(order.refunded_amount)
        remaining = gross - before
        amt = _requested_amount(amount, remaining)
        if amt <= ZERO:
            raise ValidationError("Invalid refund amount", order_id=int(order.id))
        if amt > remaining:
            raise ValidationError(
                f"Refund of {amt} exceeds the refundable balance of {remaining}",
                order_id=int(order.id), requested=float(amt), remaining=float(remaining),
            )

        version = int(order.refund_version or 0)
        updated = db.session.query(Order).filter(
            Order.id == int(order.id),
            Order.refund_version == version,
        ).update({
            Order.refunded_amount: before + amt,
            Order.refund_version: version + 1,
            Order.updated_at: datetime.utcnow(),
        }, synchronize_session=False)
        if updated == 1:
            db.session.commit()
            return amt, before, version + 1

        db.session.rollback()
        current_app.logger.warning("refund reservation on order %s lost a race (attempt %s)", order_id, attempt + 1)
        if backoff:
            time.sleep(backoff * (attempt + 1))

    raise ConflictError("Order refund state kept changing, try again", order_id=order_id)


def _release(order_id: int, amount: Decimal) -> None:
    db.session.query(Order).filter(Order.id == int(order_id)).update({
        Order.refunded_amount: Order.refunded_amount - amount,
        Order.refund_version: Order.refund_version + 1,
        Order.updated_at: datetime.utcnow(),
    }, synchronize_session=False)


def _completed_total(order_id: int) -> Decimal:
    total = db.session.query(func.coalesce(func.sum(Refund.amount), 0)).filter(
        Refund.order_id == int(order_id),
        Refund.status == "completed",
    ).scalar()
    return money(total or 0)


def _items_to_restock(order: Order, is_full: bool, refund_items: Optional[list]) -> list[OrderItem]:
    if is_full:
        return list(order.items)
    if not refund_items:
        return []
    ids, product_ids = set(), set()
    for ri in refund_items:
        ref = ri.get("id", ri.get("product_id")) if isinstance(ri, dict) else ri
        if ref is None:
            continue
        product_ids.add(str(ref))
        if isinstance(ref, int) or (isinstance(ref, str) and ref.isdigit()):
            ids.add(int(ref))
    return [i for i in order.items if int(i.id) in ids or (i.product_id and i.product_id in product_ids)]


def _call_rail(order: Order, amount: Decimal, reason: str, version: int) -> str:
    rails = get_rails()
    rail = rails.get(order.payment_method)
    if rail is None:
        raise ConfigurationError(f"{order.payment_method} refunds are not configured")
    key = f"refund-{order.id}-{version}"
    if order.payment_method == "paypal":
        return rail.refund(order.payment_reference, amount, order.currency or "GBP", request_id=key)
    return rail.refund(order.payment_reference, amount, reason=reason, idempotency_key=key)


def _promote_to_full(order_id: int, gross: Decimal, now: datetime) -> bool:
    """Re-derive the status once this refund is committed. A concurrent refund
    that committed in between is only visible now."""
    if _completed_total(order_id) < gross:
        return False
    updated = db.session.query(Order).filter(Order.id == int(order_id), Order.refund_status != "full").update({
        Order.refund_status: "full",
        Order.updated_at: now,
    }, synchronize_session=False)
    db.session.commit()
    return updated == 1


def _cancel_unpaid_obligations(order_id: int) -> int:
    return db.session.query(PayeeObligation).filter(
        PayeeObligation.order_id == int(order_id),
        PayeeObligation.status.in_(DISPATCHABLE_STATUSES),
    ).update({
        PayeeObligation.status: "cancelled",
        PayeeObligation.failure_reason: "Order refunded before payout",
        PayeeObligation.updated_at: datetime.utcnow(),
    }, synchronize_session=False)


def refund_order(order_id: int, amount: Any = None, reason: Optional[str] = None, refund_items: Optional[list] = None) -> RefundOutcome:
    """Refund all or part of an order through the rail it was paid with.

    A rail failure records a failed Refund and gives the reserved amount
    back; it is reported in the outcome, not raised.
    """
    order = _load_order(order_id)
    if order.refund_status == "full":
        raise ValidationError("Order already fully refunded", order_id=int(order.id))
    if order.payment_method == "free" or not order.payment_reference:
        raise ValidationError("Order has no payment to refund", order_id=int(order.id))
    if get_rails().get(order.payment_method) is None:
        raise ConfigurationError(f"{order.payment_method} refunds are not configured")

    reason = (reason or "requested_by_customer").strip()[:64]
    amt, before, version = _reserve(order_id, amount)
    order = _load_order(order_id)
    gross = money(order.gross_total)
    is_full = before + amt >= gross
    items_json = json.dumps(refund_items) if refund_items else None

    try:
        ref = _call_rail(order, amt, reason, version)
    except RailError as e:
        _release(order.id, amt)
        refund = Refund(
            order_id=int(order.id), amount=amt, currency=order.currency or "GBP", reason=reason,
            method=order.payment_method, status="failed", failure_reason=(e.message or "rail error")[:500],
            is_full_refund=is_full, refund_items=items_json,
        )
        db.session.add(refund)
        db.session.commit()
        current_app.logger.error("refund of %s on order %s failed: %s", amt, order.order_number, e.message)
        return RefundOutcome(_load_order(order_id), refund)

    now = datetime.utcnow()
    refund = Refund(
        order_id=int(order.id), amount=amt, currency=order.currency or "GBP", reason=reason,
        method=order.payment_method, external_ref=ref or None, status="completed",
        is_full_refund=is_full, refund_items=items_json, created_at=now,
    )
    db.session.add(refund)
    db.session.flush()

    new_status = "full" if _completed_total(order.id) >= gross else "partial"
    db.session.query(Order).filter(Order.id == int(order.id), Order.refund_status != "full").update({
        Order.refund_status: new_status,
        Order.last_refund_at: now,
        Order.updated_at: now,
    }, synchronize_session=False)
    db.session.commit()
    current_app.logger.info("refunded %s on order %s (%s)", amt, order.order_number, new_status)

    if new_status != "full" and _promote_to_full(order.id, gross, now):
        current_app.logger.info("order %s fully refunded once concurrent refunds landed", order.order_number)

    order = _load_order(order_id)
    to_restock = _items_to_restock(order, order.refund_status == "full", refund_items)
    if to_restock:
        try:
            get_inventory().restore_stock(int(order.id), to_restock)
        except Exception as e:
            db.session.rollback()
            current_app.logger.error("stock restore for order %s failed: %s", order.order_number, e)

    if order.refund_status == "full":
        cancelled = _cancel_unpaid_obligations(order.id)
        db.session.commit()
        if cancelled:
            current_app.logger.info("cancelled %s unpaid obligations on order %s", cancelled, order.order_number)

    notify("refund_processed", {
        "order_id": int(order.id),
        "order_number": order.order_number,
        "customer_email": order.customer_email,
        "amount": f"{amt:.2f}",
        "currency": order.currency,
        "full": order.refund_status == "full",
    })
    return RefundOutcome(_load_order(order_id), refund)
