"""
Repository pattern for table-specific queries that the generic CRUD
handlers do not cover: tour aggregates, geo lookups, review listings,
rating recalculation and the user lookups behind authentication.
"""

from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging
import math

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from natours.core.monitoring import track_performance
from natours.db.models import Review, Tour, User

logger = logging.getLogger(__name__)

EARTH_RADIUS = {"mi": 3958.8, "km": 6371.0}

USER_PUBLIC_FIELDS = ("id", "name", "email", "photo", "role", "active")


def great_circle_distance(lat1: float, lng1: float, lat2: float, lng2: float, unit: str) -> float:
    """Spherical law of cosines distance between two points, in ``unit``."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    delta = math.radians(lng2) - math.radians(lng1)
    cos_angle = (
        math.cos(phi1) * math.cos(phi2) * math.cos(delta)
        + math.sin(phi1) * math.sin(phi2)
    )
    # clamp rounding noise so acos stays defined for identical points
    cos_angle = max(-1.0, min(1.0, cos_angle))
    return EARTH_RADIUS[unit] * math.acos(cos_angle)


class TourRepository:
    """Aggregate and geospatial queries over the tours table."""

    def __init__(self, db: Session):
        self.db = db

    @track_performance("tour stats")
    def get_tour_stats(self) -> List[Dict[str, Any]]:
        stmt = (
            select(
                Tour.difficulty,
                func.count().label("total_tours"),
                func.avg(Tour.rating).label("avg_rating"),
                func.avg(Tour.price).label("avg_price"),
                func.min(Tour.price).label("min_price"),
                func.max(Tour.price).label("max_price"),
            )
            .where(Tour.rating >= 4.5)
            .group_by(Tour.difficulty)
            .order_by(Tour.difficulty)
        )
        return [dict(row) for row in self.db.execute(stmt).mappings()]

    @track_performance("monthly plan")
    def get_monthly_plan(self, year: int) -> List[Dict[str, Any]]:
        """
        Tour starts per month of ``year``: busiest month first, at most 12 rows.
        Each row: {"month", "num_tour_starts", "tours"}.
        """
        rows = self.db.execute(select(Tour.name, Tour.start_dates).order_by(Tour.id)).all()

        starts: Dict[int, List[str]] = defaultdict(list)
        for name, start_dates in rows:
            for start in start_dates or []:
                if start.year == year:
                    starts[start.month].append(name)

        plan = [
            {"month": month, "num_tour_starts": len(names), "tours": names}
            for month, names in starts.items()
        ]
        plan.sort(key=lambda entry: (-entry["num_tour_starts"], entry["month"]))
        return plan[:12]

    def _with_distance(self, lat: float, lng: float, unit: str):
        tours = self.db.execute(select(Tour.__table__).order_by(Tour.id)).mappings().all()
        for tour in tours:
            coordinates = tour["start_location_coordinates"]
            if not coordinates or len(coordinates) < 2:
                continue
            tour_lng, tour_lat = coordinates[0], coordinates[1]
            yield dict(tour), great_circle_distance(lat, lng, tour_lat, tour_lng, unit)

    def get_tours_within(self, lat: float, lng: float, distance: float, unit: str) -> List[Dict[str, Any]]:
        return [
            tour for tour, d in self._with_distance(lat, lng, unit) if d <= distance
        ]

    def get_distances(self, lat: float, lng: float, unit: str) -> List[Dict[str, Any]]:
        distances = [
            {"id": tour["id"], "name": tour["name"], "distance": d}
            for tour, d in self._with_distance(lat, lng, unit)
        ]
        distances.sort(key=lambda entry: entry["distance"])
        return distances


class ReviewRepository:
    """Review listings joined with their authors, and tour rating upkeep."""

    def __init__(self, db: Session):
        self.db = db

    def _with_authors(self):
        return select(
            Review.__table__,
            User.name.label("user_name"),
            User.photo.label("user_photo"),
        ).join(User, Review.user_id == User.id)

    def list_with_authors(self, tour_id: Optional[int] = None) -> List[Dict[str, Any]]:
        stmt = self._with_authors()
        if tour_id is not None:
            stmt = stmt.where(Review.tour_id == tour_id)
        stmt = stmt.order_by(Review.id)
        return [dict(row) for row in self.db.execute(stmt).mappings()]

    def calc_tour_ratings(self, tour_id: int) -> None:
        """Recompute ratings_quantity and rating (4.5 with no reviews) for a tour."""
        stats = self.db.execute(
            select(
                func.count(Review.id).label("ratings_quantity"),
                func.coalesce(func.avg(Review.rating), 4.5).label("avg_rating"),
            ).where(Review.tour_id == tour_id)
        ).one()

        self.db.execute(
            update(Tour)
            .where(Tour.id == tour_id)
            .values(ratings_quantity=stats.ratings_quantity, rating=float(stats.avg_rating))
        )
        self.db.commit()
        logger.debug(
            f"Tour {tour_id} ratings recalculated: "
            f"{stats.ratings_quantity} reviews, avg {stats.avg_rating}"
        )


class UserRepository:
    """User lookups and credential updates used by the auth flows."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: int) -> Optional[Dict[str, Any]]:
        row = self.db.execute(
            select(User.__table__).where(User.id == user_id, User.active.is_(True))
        ).mappings().first()
        return dict(row) if row else None

    def get_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        row = self.db.execute(
            select(User.__table__).where(User.email == email, User.active.is_(True))
        ).mappings().first()
        return dict(row) if row else None

    def get_by_reset_token(self, token_hash: str) -> Optional[Dict[str, Any]]:
        row = self.db.execute(
            select(User.__table__).where(
                User.password_reset_token == token_hash,
                User.active.is_(True),
                User.password_reset_expires > datetime.now(timezone.utc),
            )
        ).mappings().first()
        return dict(row) if row else None

    def create(self, name: str, email: str, password_hash: str, photo: Optional[str] = None) -> Dict[str, Any]:
        values = {"name": name, "email": email, "password": password_hash}
        if photo:
            values["photo"] = photo
        row = self.db.execute(
            User.__table__.insert().values(**values).returning(User.__table__)
        ).mappings().one()
        self.db.commit()
        return dict(row)

    def set_password(self, user_id: int, password_hash: str, changed_at: datetime) -> None:
        self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(
                password=password_hash,
                password_changed_at=changed_at,
                password_reset_token=None,
                password_reset_expires=None,
            )
        )
        self.db.commit()

    def set_reset_token(self, user_id: int, token_hash: Optional[str], expires: Optional[datetime]) -> None:
        self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(password_reset_token=token_hash, password_reset_expires=expires)
        )
        self.db.commit()

    def deactivate(self, user_id: int) -> None:
        self.db.execute(update(User).where(User.id == user_id).values(active=False))
        self.db.commit()


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    """Strip credentials and reset state from a user row."""
    return {key: user[key] for key in USER_PUBLIC_FIELDS if key in user}
