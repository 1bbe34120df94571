from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from flask import current_app
from sqlalchemy.exc import IntegrityError

from settlement.errors import ConflictError, ValidationError
from settlement.extensions import db
from settlement.models import RatingAggregate, UserRating


@dataclass(frozen=True)
class RatingSummary:
    release_id: str
    average: Decimal
    count: int
    five_star_count: int

    def to_dict(self) -> dict:
        return {
            "release_id": self.release_id,
            "average": float(self.average),
            "count": int(self.count),
            "five_star_count": int(self.five_star_count),
        }


def _average(total: int, count: int) -> Decimal:
    if count <= 0:
        return Decimal("0.00")
    return (Decimal(total) / Decimal(count)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _summary(agg: RatingAggregate | None, release_id: str) -> RatingSummary:
    if agg is None:
        return RatingSummary(release_id, Decimal("0.00"), 0, 0)
    return RatingSummary(release_id, Decimal(agg.average or 0), int(agg.count or 0), int(agg.five_star_count or 0))


def _validate_rating(rating) -> int:
    if isinstance(rating, bool):
        raise ValidationError("Rating must be an integer from 1 to 5")
    if isinstance(rating, float) and not rating.is_integer():
        raise ValidationError("Rating must be an integer from 1 to 5")
    try:
        value = int(rating)
    except (TypeError, ValueError):
        raise ValidationError("Rating must be an integer from 1 to 5")
    if value < 1 or value > 5:
        raise ValidationError("Rating must be an integer from 1 to 5")
    return value


def _load_aggregate(release_id: str) -> RatingAggregate:
    agg = db.session.get(RatingAggregate, release_id, populate_existing=True)
    if agg is not None:
        return agg
    db.session.add(RatingAggregate(release_id=release_id, average=Decimal("0.00"), count=0, five_star_count=0, rating_total=0, version=0))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
    return db.session.get(RatingAggregate, release_id, populate_existing=True)


def _cas_update_aggregate(release_id: str, expected_version: int, values: dict) -> bool:
    """Write the new aggregate only if nobody else has since the read."""
    values = dict(values)
    values[RatingAggregate.version] = expected_version + 1
    updated = db.session.query(RatingAggregate).filter(
        RatingAggregate.release_id == release_id,
        RatingAggregate.version == expected_version,
    ).update(values, synchronize_session=False)
    return updated == 1


def upsert_rating(release_id: str, user_id: str, rating) -> RatingSummary:
    """Record a user's rating for a release, replacing any earlier one.

    The aggregate keeps an exact integer sum, so the average never drifts
    however many times ratings are changed.
    """
    release_id = str(release_id or "").strip()
    user_id = str(user_id or "").strip()
    if not release_id:
        raise ValidationError("release_id is required")
    if not user_id:
        raise ValidationError("user_id is required")
    value = _validate_rating(rating)

    max_retries = int(current_app.config.get("CONFLICT_MAX_RETRIES", 5))
    backoff = float(current_app.config.get("CONFLICT_BACKOFF_SECONDS", 0.05))

    for attempt in range(max_retries):
        agg = _load_aggregate(release_id)
        version = int(agg.version or 0)
        count = int(agg.count or 0)
        total = int(agg.rating_total or 0)
        five = int(agg.five_star_count or 0)

        existing = UserRating.query.filter_by(release_id=release_id, user_id=user_id).populate_existing().first()
        if existing is not None:
            total = total - int(existing.rating) + value
            five = five - (1 if int(existing.rating) == 5 else 0) + (1 if value == 5 else 0)
        else:
            count += 1
            total += value
            five += 1 if value == 5 else 0

        now = datetime.utcnow()
        ok = _cas_update_aggregate(release_id, version, {
            RatingAggregate.count: count,
            RatingAggregate.rating_total: total,
            RatingAggregate.five_star_count: five,
            RatingAggregate.average: _average(total, count),
            RatingAggregate.last_rated_at: now,
        })
        if ok:
            if existing is not None:
                existing.rating = value
                existing.updated_at = now
            else:
                db.session.add(UserRating(release_id=release_id, user_id=user_id, rating=value, created_at=now, updated_at=now))
            try:
                db.session.commit()
            except IntegrityError:
                ok = False
        if ok:
            summary = RatingSummary(release_id, _average(total, count), count, five)
            current_app.logger.info("rating %s by %s -> avg %s over %s", release_id, user_id, summary.average, count)
            return summary

        db.session.rollback()
        current_app.logger.warning("rating aggregate %s changed underneath (attempt %s)", release_id, attempt + 1)
        if backoff:
            time.sleep(backoff * (attempt + 1))

    raise ConflictError("Rating aggregate kept changing, try again", release_id=release_id)


def get_rating_summaries(release_ids: Iterable[str]) -> dict[str, RatingSummary]:
    ids = [str(r).strip() for r in release_ids if str(r or "").strip()]
    if not ids:
        return {}
    rows = RatingAggregate.query.filter(RatingAggregate.release_id.in_(ids)).all()
    by_id = {r.release_id: r for r in rows}
    return {rid: _summary(by_id.get(rid), rid) for rid in ids}


def get_user_ratings(user_id: str) -> dict[str, int]:
    rows = UserRating.query.filter_by(user_id=str(user_id)).order_by(UserRating.release_id.asc()).all()
    return {r.release_id: int(r.rating) for r in rows}
