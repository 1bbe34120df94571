from __future__ import annotations

import json
from datetime import datetime
from typing import Optional

from flask import current_app

from settlement.extensions import db
from settlement.models import AuditLog, LedgerEntry, Order
from settlement.services.ledger import append_ledger_entry, build_ledger_entry


def backfill_ledger(*, dry_run: bool = False, limit: int = 5000, actor: Optional[str] = None) -> dict:
    """Create ledger rows for historical orders that never got one.

    Cancelled and test orders are skipped. Missing fee fields are estimated
    and the row is flagged fees_estimated. Orders themselves are never touched.
    """
    now = datetime.utcnow()
    orders = Order.query.order_by(Order.id.asc()).limit(int(limit)).all()
    existing = {int(r[0]) for r in db.session.query(LedgerEntry.order_id).all()}

    counts = {"scanned": len(orders), "created": 0, "skipped_existing": 0, "skipped_cancelled": 0, "skipped_test": 0, "estimated": 0}
    preview = []
    for order in orders:
        if int(order.id) in existing:
            counts["skipped_existing"] += 1
            continue
        if order.status == "cancelled":
            counts["skipped_cancelled"] += 1
            continue
        if order.is_test or order.payment_method == "test_mode":
            counts["skipped_test"] += 1
            continue

        if dry_run:
            entry = build_ledger_entry(order, migrated_from="orders")
            counts["created"] += 1
            counts["estimated"] += 1 if entry.fees_estimated else 0
            preview.append(entry.to_dict())
            continue

        entry, created = append_ledger_entry(order, migrated_from="orders")
        if created:
            counts["created"] += 1
            counts["estimated"] += 1 if entry.fees_estimated else 0
        else:
            counts["skipped_existing"] += 1

    if not dry_run:
        db.session.add(AuditLog(
            actor=actor,
            action="ledger_backfill",
            target_type="sales_ledger",
            meta=json.dumps({**counts, "at": now.isoformat()}),
            created_at=now,
        ))
        db.session.commit()
    current_app.logger.info("ledger backfill%s: %s", " (dry run)" if dry_run else "", counts)
    result = {**counts, "dry_run": bool(dry_run)}
    if dry_run:
        result["preview"] = preview[:50]
    return result
