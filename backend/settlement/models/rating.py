from datetime import datetime
from decimal import Decimal

from settlement.extensions import db


class RatingAggregate(db.Model):
    __tablename__ = "rating_aggregates"

    release_id = db.Column(db.String(64), primary_key=True)
    average = db.Column(db.Numeric(4, 2), nullable=False, default=Decimal("0.00"))
    count = db.Column(db.Integer, nullable=False, default=0)
    five_star_count = db.Column(db.Integer, nullable=False, default=0)
    # Exact sum of the latest rating per user; average is derived from it.
    rating_total = db.Column(db.Integer, nullable=False, default=0)
    version = db.Column(db.Integer, nullable=False, default=0)
    last_rated_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self):
        return {
            "release_id": self.release_id,
            "average": float(self.average or 0),
            "count": int(self.count or 0),
            "five_star_count": int(self.five_star_count or 0),
            "last_rated_at": self.last_rated_at.isoformat() if self.last_rated_at else None,
        }


class UserRating(db.Model):
    __tablename__ = "user_ratings"
    __table_args__ = (db.UniqueConstraint("release_id", "user_id", name="uq_user_rating_release_user"),)

    id = db.Column(db.Integer, primary_key=True)
    release_id = db.Column(db.String(64), nullable=False, index=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    rating = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "release_id": self.release_id,
            "user_id": self.user_id,
            "rating": int(self.rating),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
