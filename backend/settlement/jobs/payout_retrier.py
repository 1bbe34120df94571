from __future__ import annotations

import json
from datetime import datetime, timedelta
from typing import Optional

from flask import current_app

from settlement.errors import SettlementError
from settlement.extensions import db
from settlement.models import AuditLog, PayeeObligation
from settlement.models.obligation import DISPATCHABLE_STATUSES
from settlement.services.payouts import dispatch


def run_payout_retries(*, limit: Optional[int] = None, max_age_days: Optional[int] = None, actor: Optional[str] = None) -> dict:
    """Dispatch outstanding obligations, oldest first.

    Obligations older than the age cut-off are left for an operator. Each
    obligation is dispatched independently; one failure never stops the run.
    """
    limit = int(limit or current_app.config.get("MAX_RETRIES_PER_RUN", 20))
    max_age_days = int(max_age_days or current_app.config.get("MAX_RETRY_AGE_DAYS", 30))
    now = datetime.utcnow()
    cutoff = now - timedelta(days=max_age_days)

    stale = PayeeObligation.query.filter(
        PayeeObligation.status.in_(DISPATCHABLE_STATUSES),
        PayeeObligation.created_at < cutoff,
    ).count()

    candidates = PayeeObligation.query.filter(
        PayeeObligation.status.in_(DISPATCHABLE_STATUSES),
        PayeeObligation.created_at >= cutoff,
    ).order_by(PayeeObligation.created_at.asc(), PayeeObligation.id.asc()).limit(limit).all()
    ids = [int(o.id) for o in candidates]

    counts = {"checked": len(ids), "completed": 0, "failed": 0, "cleared": 0, "awaiting_connect": 0, "in_flight": 0, "errors": 0, "skipped_stale": stale}
    results = []
    for oid in ids:
        try:
            outcome = dispatch(oid)
        except SettlementError as e:
            db.session.rollback()
            counts["errors"] += 1
            results.append({"obligation_id": oid, "outcome": "error", "error": e.message})
            current_app.logger.error("retry of obligation %s errored: %s", oid, e.message)
            if e.code == "configuration_error":
                break
            continue
        counts[outcome.outcome] += 1
        results.append({"obligation_id": oid, "outcome": outcome.outcome})

    if stale:
        current_app.logger.warning("%s outstanding obligations are older than %s days and were not retried", stale, max_age_days)

    db.session.add(AuditLog(
        actor=actor,
        action="payout_retry_run",
        target_type="payee_obligation",
        meta=json.dumps({**counts, "at": now.isoformat()}),
        created_at=now,
    ))
    db.session.commit()
    current_app.logger.info("payout retry run: %s", counts)
    return {**counts, "results": results}
