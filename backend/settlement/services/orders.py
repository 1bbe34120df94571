"""Settlement builder: raw order in, persisted order + obligations + ledger row out."""

from __future__ import annotations

import random
import string
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from settlement.errors import NotFoundError, SettlementError
from settlement.extensions import db
from settlement.models import LedgerEntry, Order, OrderItem, PayeeObligation
from settlement.services.ledger import append_ledger_entry
from settlement.services.payees import find_payee
from settlement.utils.fees import ZERO, FeeSchedule, compute_customer_price, money, split_by_payee
from settlement.utils.normalize import normalize_raw_order
from settlement.utils.notify import notify

_ORDER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits


@dataclass
class SettlementResult:
    order: Order
    ledger_entry: Optional[LedgerEntry]
    obligations: List[PayeeObligation] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "order": self.order.to_dict(),
            "ledger_recorded": self.ledger_entry is not None,
            "obligations": [o.to_dict() for o in self.obligations],
        }


def generate_order_number(now: Optional[datetime] = None) -> str:
    now = now or datetime.utcnow()
    suffix = "".join(random.choices(_ORDER_NUMBER_ALPHABET, k=6))
    return f"FW-{now:%y%m%d}-{suffix}"


def _build_items(items: list, fees: FeeSchedule) -> list[OrderItem]:
    rows = []
    for it in items:
        split = compute_customer_price(it["unit_price"], it["quantity"], fees)
        rows.append(OrderItem(
            type=it["type"],
            product_id=it["product_id"],
            title=it["title"],
            payee_id=it["payee_id"],
            payee_type=it["payee_type"],
            unit_price=it["unit_price"],
            quantity=it["quantity"],
            customer_price=split.customer_price,
            processor_fee=split.processor_fee,
            platform_fee=split.platform_fee,
            payee_share=split.payee_share,
        ))
    return rows


def _persist_order(data: dict, items: list[OrderItem]) -> Order:
    currency = data["currency"] or current_app.config.get("CURRENCY", "GBP")
    groups = split_by_payee(items)
    addr = data["shipping_address"]
    has_physical = any(i.is_physical for i in items)

    # order_number is random; regenerate on the rare collision
    for _ in range(3):
        now = datetime.utcnow()
        order = Order(
            order_number=generate_order_number(now),
            customer_email=data["customer"]["email"],
            customer_first_name=data["customer"]["first_name"],
            customer_last_name=data["customer"]["last_name"],
            customer_user_id=data["customer"]["user_id"],
            shipping_address1=addr["address1"] or None,
            shipping_address2=addr["address2"] or None,
            shipping_city=addr["city"] or None,
            shipping_postcode=addr["postcode"] or None,
            shipping_country=addr["country"] or None,
            subtotal=money(sum((i.customer_price for i in items), ZERO)),
            shipping=data["shipping"],
            processor_fees=money(sum((i.processor_fee for i in items), ZERO)),
            platform_fees=money(sum((i.platform_fee for i in items), ZERO)),
            payee_payments=money(sum((g.total_share for g in groups.values()), ZERO)),
            currency=currency,
            payment_method=data["payment_method"],
            payment_reference=data["payment_reference"],
            status="processing" if has_physical else "completed",
            is_test=data["is_test"],
            created_at=now,
            updated_at=now,
        )
        order.items = items
        db.session.add(order)
        try:
            db.session.commit()
            return order
        except IntegrityError:
            db.session.rollback()
            current_app.logger.warning("order number collision, regenerating")
            items = [_copy_item(i) for i in items]
    raise SettlementError("Could not allocate an order number")


def _copy_item(i: OrderItem) -> OrderItem:
    return OrderItem(
        type=i.type, product_id=i.product_id, title=i.title, payee_id=i.payee_id, payee_type=i.payee_type,
        unit_price=i.unit_price, quantity=i.quantity, customer_price=i.customer_price,
        processor_fee=i.processor_fee, platform_fee=i.platform_fee, payee_share=i.payee_share,
    )


def rebuild_obligations(order: Order) -> list[PayeeObligation]:
    """Create any obligation missing for this order's payees. Returns only the new ones.

    Safe to call repeatedly: (order_id, payee_id) is unique, so a concurrent
    builder loses on insert and the existing row stands. A fully refunded
    order owes nothing, so none are created for it.
    """
    created = []
    if order.refund_status == "full":
        return created
    for payee_id, group in split_by_payee(order.items).items():
        exists = PayeeObligation.query.filter_by(order_id=int(order.id), payee_id=payee_id).first()
        if exists is not None:
            continue
        ob = PayeeObligation(
            order_id=int(order.id),
            payee_id=payee_id,
            payee_type=group.payee_type,
            amount=group.total_share,
            currency=order.currency or "GBP",
            status="pending",
        )
        db.session.add(ob)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            continue
        created.append(ob)
        current_app.logger.info(
            "obligation %s: %s owed %s %s for order %s",
            ob.id, payee_id, ob.amount, ob.currency, order.order_number,
        )
    return created


def _notify_settlement(order: Order, obligations: list[PayeeObligation]) -> None:
    notify("order_receipt", {
        "order_id": int(order.id),
        "order_number": order.order_number,
        "customer_email": order.customer_email,
        "customer_name": f"{order.customer_first_name} {order.customer_last_name}".strip(),
        "total": f"{order.gross_total:.2f}",
        "currency": order.currency,
        "items": [{"title": i.title, "quantity": int(i.quantity), "price": f"{i.customer_price:.2f}"} for i in order.items],
    })
    for ob in obligations:
        payee = find_payee(ob.payee_id)
        notify("payee_earnings", {
            "order_number": order.order_number,
            "payee_id": ob.payee_id,
            "payee_email": payee.email if payee else None,
            "amount": f"{ob.amount:.2f}",
            "currency": ob.currency,
        })


def _auto_dispatch(obligations: list[PayeeObligation]) -> None:
    from settlement.services.payouts import dispatch

    for ob in obligations:
        try:
            dispatch(int(ob.id))
        except SettlementError as e:
            current_app.logger.warning("auto-dispatch of obligation %s skipped: %s", ob.id, e.message)


def build_order(raw_order: Any) -> SettlementResult:
    """Validate, price and persist an order, then settle it.

    Writes commit in order: order with items, obligations, ledger row. A
    crash between steps leaves something reconcile_settlements can finish.
    """
    data = normalize_raw_order(raw_order)
    fees = FeeSchedule.from_config(current_app.config)

    items = _build_items(data["items"], fees)
    order = _persist_order(data, items)
    current_app.logger.info(
        "order %s created: total %s %s, %s items, status %s",
        order.order_number, order.gross_total, order.currency, len(order.items), order.status,
    )

    obligations = rebuild_obligations(order)
    entry, _ = append_ledger_entry(order)

    _notify_settlement(order, obligations)

    if current_app.config.get("AUTO_DISPATCH_PAYOUTS"):
        _auto_dispatch(obligations)

    return SettlementResult(order=order, ledger_entry=entry, obligations=obligations)


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, int(order_id))
    if order is None:
        raise NotFoundError(f"Order {order_id} not found", order_id=order_id)
    return order
