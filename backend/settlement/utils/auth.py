from __future__ import annotations

from functools import wraps

from flask import g, jsonify, request

from settlement.utils.jwt_utils import decode_token, get_bearer_token


def current_admin() -> str | None:
    tok = get_bearer_token(request.headers.get("Authorization", ""))
    if not tok:
        return None
    payload = decode_token(tok)
    if not payload or payload.get("type") != "access":
        return None
    if (payload.get("role") or "") != "admin":
        return None
    return str(payload.get("sub") or "") or None


def admin_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        actor = current_admin()
        if not actor:
            return jsonify({"ok": False, "error": "forbidden", "message": "Admin required"}), 403
        g.admin_actor = actor
        return fn(*args, **kwargs)

    return wrapper
