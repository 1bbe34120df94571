from __future__ import annotations

from flask import Blueprint, jsonify, request

from settlement.errors import ValidationError
from settlement.services.ratings import get_rating_summaries, get_user_ratings, upsert_rating

ratings_bp = Blueprint("ratings_bp", __name__, url_prefix="/api/ratings")


@ratings_bp.post("")
def rate_release():
    data = request.get_json(silent=True) or {}
    release_id = data.get("release_id") or data.get("releaseId")
    user_id = data.get("user_id") or data.get("userId")
    if not user_id:
        raise ValidationError("You must be logged in to rate releases")
    summary = upsert_rating(release_id, user_id, data.get("rating"))
    return jsonify({"ok": True, **summary.to_dict()}), 200


@ratings_bp.get("")
def rating_summaries():
    raw = (request.args.get("ids") or "").strip()
    ids = [r for r in raw.split(",") if r.strip()][:100]
    summaries = get_rating_summaries(ids)
    return jsonify({"ok": True, "ratings": {k: v.to_dict() for k, v in summaries.items()}}), 200


@ratings_bp.get("/user/<user_id>")
def user_ratings(user_id: str):
    return jsonify({"ok": True, "user_id": user_id, "ratings": get_user_ratings(user_id)}), 200
