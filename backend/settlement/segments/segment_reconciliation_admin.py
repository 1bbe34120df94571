from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from settlement.jobs.settlement_reconciler import reconcile_settlements
from settlement.utils.auth import admin_required

recon_bp = Blueprint("recon_bp", __name__, url_prefix="/api/admin/reconcile")


@recon_bp.post("")
@admin_required
def run_recon():
    data = request.get_json(silent=True) or {}
    limit = int(data.get("limit") or 200)
    res = reconcile_settlements(limit=limit, actor=g.admin_actor)
    return jsonify({"ok": True, **res}), 200
