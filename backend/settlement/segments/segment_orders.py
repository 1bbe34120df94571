from __future__ import annotations

from flask import Blueprint, jsonify, request

from settlement.services.orders import build_order, get_order
from settlement.utils.idempotency import lookup_response, release_key, store_response

orders_bp = Blueprint("orders_bp", __name__, url_prefix="/api/orders")


@orders_bp.post("")
def create_order():
    payload = request.get_json(silent=True) or {}

    idem = lookup_response("POST /api/orders", payload)
    if idem is not None and idem[0] in ("hit", "conflict"):
        return jsonify(idem[1]), idem[2]
    row = idem[1] if idem is not None else None

    try:
        result = build_order(payload)
    except Exception:
        if row is not None:
            release_key(row)
        raise

    body = {"ok": True, **result.to_dict()}
    if row is not None:
        store_response(row, body, 201)
    return jsonify(body), 201


@orders_bp.get("/<int:order_id>")
def order_detail(order_id: int):
    order = get_order(order_id)
    return jsonify({"ok": True, "order": order.to_dict()}), 200
