from __future__ import annotations

import json
from datetime import datetime, timedelta
from typing import Optional

from flask import current_app

from settlement.extensions import db
from settlement.models import AuditLog, LedgerEntry, Order, PayeeObligation
from settlement.services.ledger import append_ledger_entry
from settlement.services.orders import rebuild_obligations


def reconcile_settlements(*, limit: int = 200, actor: Optional[str] = None) -> dict:
    """Finish settlements that were interrupted and report stuck payouts.

    Missing obligations and ledger rows are recreated. Obligations stuck in
    processing are only reported: the rail may have moved the money, so they
    need a human to check before any retry.
    """
    now = datetime.utcnow()
    orders = Order.query.order_by(Order.id.desc()).limit(int(limit)).all()

    counts = {"checked": len(orders), "obligations_created": 0, "ledger_created": 0, "stuck_processing": 0}
    for order in orders:
        if order.is_test or order.status == "cancelled":
            continue
        created = rebuild_obligations(order)
        if created:
            counts["obligations_created"] += len(created)
            db.session.add(AuditLog(
                actor=actor,
                action="obligations_rebuilt",
                target_type="order",
                target_id=int(order.id),
                meta=json.dumps({"payees": [o.payee_id for o in created], "at": now.isoformat()}),
                created_at=now,
            ))
            db.session.commit()
        if db.session.get(LedgerEntry, int(order.id)) is None:
            _, was_created = append_ledger_entry(order)
            if was_created:
                counts["ledger_created"] += 1

    threshold = now - timedelta(minutes=int(current_app.config.get("STUCK_PROCESSING_MINUTES", 30)))
    stuck = PayeeObligation.query.filter(
        PayeeObligation.status == "processing",
        PayeeObligation.updated_at < threshold,
    ).order_by(PayeeObligation.id.asc()).all()
    for ob in stuck:
        counts["stuck_processing"] += 1
        current_app.logger.warning("obligation %s stuck in processing since %s", ob.id, ob.updated_at)
        db.session.add(AuditLog(
            actor=actor,
            action="obligation_stuck",
            target_type="payee_obligation",
            target_id=int(ob.id),
            meta=json.dumps({"payee_id": ob.payee_id, "amount": float(ob.amount or 0), "since": ob.updated_at.isoformat()}),
            created_at=now,
        ))

    db.session.add(AuditLog(
        actor=actor,
        action="settlement_reconcile",
        target_type="order",
        meta=json.dumps({**counts, "at": now.isoformat()}),
        created_at=now,
    ))
    db.session.commit()
    current_app.logger.info("settlement reconcile: %s", counts)
    return {**counts, "stuck": [o.id for o in stuck]}
