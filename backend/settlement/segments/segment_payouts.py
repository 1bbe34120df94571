from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from settlement.jobs.payout_retrier import run_payout_retries
from settlement.services.payouts import dispatch, list_obligations
from settlement.utils.auth import admin_required

payouts_bp = Blueprint("payouts_bp", __name__, url_prefix="/api/admin/payouts")


@payouts_bp.post("/<int:obligation_id>/dispatch")
@admin_required
def dispatch_obligation(obligation_id: int):
    outcome = dispatch(obligation_id)
    return jsonify({"ok": outcome.outcome in ("completed", "cleared"), **outcome.to_dict()}), 200


@payouts_bp.post("/retry")
@admin_required
def retry_payouts():
    data = request.get_json(silent=True) or {}
    res = run_payout_retries(limit=data.get("limit"), max_age_days=data.get("max_age_days"), actor=g.admin_actor)
    return jsonify({"ok": True, **res}), 200


@payouts_bp.get("/obligations")
@admin_required
def obligations():
    status = (request.args.get("status") or "").strip() or None
    payee_id = (request.args.get("payee_id") or "").strip() or None
    try:
        limit = min(int(request.args.get("limit") or 200), 1000)
    except ValueError:
        limit = 200
    rows = list_obligations(status=status, payee_id=payee_id, limit=limit)
    return jsonify({"ok": True, "items": [o.to_dict() for o in rows]}), 200
