from __future__ import annotations

import hashlib
import json
from typing import Any

from flask import request
from sqlalchemy.exc import IntegrityError

from settlement.extensions import db
from settlement.models import IdempotencyKey


def _hash_request(payload: Any) -> str:
    raw = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


def get_idempotency_key() -> str | None:
    k = request.headers.get("Idempotency-Key") or request.headers.get("X-Idempotency-Key")
    if not k:
        return None
    return k.strip()[:128] or None


def lookup_response(route: str, payload: Any):
    """Returns ("hit", body, status), ("conflict", body, 409), ("miss", row, 0)
    or None when the request carries no key."""
    k = get_idempotency_key()
    if not k:
        return None

    rh = _hash_request(payload)
    row = IdempotencyKey.query.filter_by(key=k).first()
    if row is None:
        row = IdempotencyKey(key=k, route=route, request_hash=rh)
        db.session.add(row)
        try:
            db.session.commit()
            return ("miss", row, 0)
        except IntegrityError:
            db.session.rollback()
            row = IdempotencyKey.query.filter_by(key=k).first()

    if row.request_hash and row.request_hash != rh:
        return ("conflict", {"ok": False, "error": "conflict", "message": "Idempotency key reuse with different payload"}, 409)
    if not row.response_json:
        return ("conflict", {"ok": False, "error": "conflict", "message": "Request with this idempotency key is still in progress"}, 409)
    return ("hit", json.loads(row.response_json), int(row.status_code or 200))


def store_response(row: IdempotencyKey, response_json: Any, status_code: int):
    row.response_json = json.dumps(response_json, default=str)
    row.status_code = int(status_code)
    db.session.add(row)
    db.session.commit()


def release_key(row: IdempotencyKey):
    """Forget a key whose request failed so the client can retry with it."""
    db.session.rollback()
    db.session.delete(row)
    db.session.commit()
