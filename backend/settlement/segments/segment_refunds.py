from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from settlement.errors import ValidationError
from settlement.services.refunds import refund_order
from settlement.utils.auth import admin_required

refunds_bp = Blueprint("refunds_bp", __name__, url_prefix="/api/admin/refunds")


@refunds_bp.post("")
@admin_required
def process_refund():
    data = request.get_json(silent=True) or {}
    order_id = data.get("order_id") or data.get("orderId")
    if not order_id:
        raise ValidationError("Order ID required")
    try:
        order_id = int(order_id)
    except (TypeError, ValueError):
        raise ValidationError("Order ID must be an integer")
    refund_items = data.get("refund_items") or data.get("refundItems")
    if refund_items is not None and not isinstance(refund_items, list):
        raise ValidationError("refund_items must be a list")

    outcome = refund_order(order_id, amount=data.get("amount"), reason=data.get("reason"), refund_items=refund_items)
    return jsonify({**outcome.to_dict(), "requested_by": g.admin_actor}), 200 if outcome.ok else 502
