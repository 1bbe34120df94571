from __future__ import annotations

from datetime import datetime

from flask import Blueprint, g, jsonify, request

from settlement.errors import ValidationError
from settlement.jobs.ledger_backfill import backfill_ledger
from settlement.services.ledger import calculate_ledger_totals, get_ledger_entries
from settlement.utils.auth import admin_required

ledger_bp = Blueprint("ledger_bp", __name__, url_prefix="/api/admin/ledger")


def _int_arg(name: str):
    raw = (request.args.get(name) or "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


def _date_arg(name: str):
    raw = (request.args.get(name) or "").strip()
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO date")


@ledger_bp.get("")
@admin_required
def ledger():
    entries = get_ledger_entries(
        year=_int_arg("year"),
        month=_int_arg("month"),
        start=_date_arg("start"),
        end=_date_arg("end"),
        limit=min(_int_arg("limit") or 1000, 5000),
    )
    totals = calculate_ledger_totals(entries)
    return jsonify({
        "ok": True,
        "totals": {k: (float(v) if not isinstance(v, int) else v) for k, v in totals.items()},
        "entries": [e.to_dict() for e in entries],
    }), 200


@ledger_bp.post("/backfill")
@admin_required
def backfill():
    data = request.get_json(silent=True) or {}
    res = backfill_ledger(dry_run=bool(data.get("dry_run")), limit=int(data.get("limit") or 5000), actor=g.admin_actor)
    return jsonify({"ok": True, **res}), 200
