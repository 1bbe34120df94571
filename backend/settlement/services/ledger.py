from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from settlement.extensions import db
from settlement.models import LedgerEntry, Order
from settlement.utils.fees import (
    ZERO,
    FeeSchedule,
    estimate_platform_fee,
    estimate_processor_fee,
    money,
)


def _items_snapshot(order: Order) -> list:
    return [
        {
            "type": i.type,
            "id": i.product_id or "",
            "title": i.title or "Unknown",
            "payee_id": i.payee_id,
            "quantity": int(i.quantity or 1),
            "unit_price": float(i.unit_price or 0),
            "line_total": float(i.customer_price or 0),
        }
        for i in order.items
    ]


def build_ledger_entry(order: Order, migrated_from: Optional[str] = None, fees: Optional[FeeSchedule] = None) -> LedgerEntry:
    """Denormalise an order into its reporting row. Fee fields missing on the
    order are estimated at flat rates and the row is flagged."""
    fees = fees or FeeSchedule.from_config(current_app.config)
    gross = money(order.gross_total)
    estimated = False

    processor_fee = order.processor_fees
    if processor_fee is None:
        processor_fee = estimate_processor_fee(gross, fees)
        estimated = True
    platform_fee = order.platform_fees
    if platform_fee is None:
        platform_fee = estimate_platform_fee(order.payee_payments, fees)
        estimated = True
    processor_fee = money(processor_fee)
    platform_fee = money(platform_fee)
    total_fees = processor_fee + platform_fee

    ts = order.created_at or datetime.utcnow()
    items = list(order.items)
    return LedgerEntry(
        order_id=int(order.id),
        order_number=order.order_number,
        timestamp=ts,
        year=ts.year,
        month=ts.month,
        day=ts.day,
        customer_id=order.customer_user_id,
        customer_email=order.customer_email or "",
        subtotal=money(order.subtotal),
        shipping=money(order.shipping),
        gross_total=gross,
        processor_fee=processor_fee,
        platform_fee=platform_fee,
        total_fees=total_fees,
        net_revenue=gross - total_fees,
        payee_payments=money(order.payee_payments),
        payment_method=order.payment_method,
        payment_reference=order.payment_reference,
        currency=order.currency or "GBP",
        item_count=len(items),
        has_physical=any(i.is_physical for i in items),
        has_digital=any(i.type in ("digital", "track") for i in items),
        items_json=json.dumps(_items_snapshot(order)),
        migrated_from=migrated_from,
        migrated_at=datetime.utcnow() if migrated_from else None,
        fees_estimated=estimated,
    )


def append_ledger_entry(order: Order, migrated_from: Optional[str] = None) -> tuple[LedgerEntry, bool]:
    """Insert the ledger row for an order once. Returns (entry, created).

    A repeat call, or losing a race with a concurrent insert, returns the
    existing row with created=False.
    """
    existing = db.session.get(LedgerEntry, int(order.id))
    if existing is not None:
        return existing, False

    entry = build_ledger_entry(order, migrated_from=migrated_from)
    db.session.add(entry)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        existing = db.session.get(LedgerEntry, int(order.id))
        if existing is None:
            raise
        return existing, False
    current_app.logger.info("ledger entry recorded for order %s", order.order_number)
    return entry, True


def get_ledger_entries(
    year: Optional[int] = None,
    month: Optional[int] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 1000,
) -> list[LedgerEntry]:
    q = LedgerEntry.query
    if year:
        q = q.filter(LedgerEntry.year == int(year))
    if month:
        q = q.filter(LedgerEntry.month == int(month))
    if start:
        q = q.filter(LedgerEntry.timestamp >= start)
    if end:
        q = q.filter(LedgerEntry.timestamp <= end)
    return q.order_by(LedgerEntry.timestamp.desc()).limit(int(limit)).all()


def calculate_ledger_totals(entries: Iterable[LedgerEntry]) -> dict:
    totals = {
        "orders": 0,
        "gross_revenue": ZERO,
        "net_revenue": ZERO,
        "subtotal": ZERO,
        "shipping": ZERO,
        "processor_fees": ZERO,
        "platform_fees": ZERO,
        "total_fees": ZERO,
        "payee_payments": ZERO,
        "item_count": 0,
        "estimated_entries": 0,
    }
    for e in entries:
        totals["orders"] += 1
        totals["gross_revenue"] += Decimal(e.gross_total or 0)
        totals["net_revenue"] += Decimal(e.net_revenue or 0)
        totals["subtotal"] += Decimal(e.subtotal or 0)
        totals["shipping"] += Decimal(e.shipping or 0)
        totals["processor_fees"] += Decimal(e.processor_fee or 0)
        totals["platform_fees"] += Decimal(e.platform_fee or 0)
        totals["total_fees"] += Decimal(e.total_fees or 0)
        totals["payee_payments"] += Decimal(e.payee_payments or 0)
        totals["item_count"] += int(e.item_count or 0)
        if e.fees_estimated:
            totals["estimated_entries"] += 1
    return {k: (money(v) if isinstance(v, Decimal) else v) for k, v in totals.items()}
