"""
Database models -- SQLAlchemy ORM definitions.
Tables: tours, users, reviews, bookings.
Compatible with both PostgreSQL and SQLite.
"""

from datetime import date

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

Base = declarative_base()


class PortableArray(TypeDecorator):
    """
    A list column: native ARRAY on PostgreSQL, JSON text everywhere else.
    Date items are ISO strings inside the JSON variant.
    """

    impl = JSON
    cache_ok = True

    def __init__(self, item_type, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.item_type = item_type

    @property
    def _holds_dates(self) -> bool:
        return self.item_type is Date or isinstance(self.item_type, Date)

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(ARRAY(self.item_type))
        return dialect.type_descriptor(JSON())

    def process_bind_param(self, value, dialect):
        if value is None or not self._holds_dates:
            return value
        if dialect.name == "postgresql":
            return [date.fromisoformat(v) if isinstance(v, str) else v for v in value]
        return [v.isoformat() if isinstance(v, date) else v for v in value]

    def process_result_value(self, value, dialect):
        if value is None or not self._holds_dates or dialect.name == "postgresql":
            return value
        return [date.fromisoformat(v) if isinstance(v, str) else v for v in value]


DIFFICULTIES = ("easy", "medium", "difficult")
ROLES = ("user", "guide", "lead-guide", "admin")


class Tour(Base):
    __tablename__ = "tours"
    __table_args__ = (
        CheckConstraint("rating >= 1 AND rating <= 5", name="tours_rating_range"),
        CheckConstraint(
            "price_discount IS NULL OR price_discount < price",
            name="tours_discount_below_price",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(40), unique=True, nullable=False)
    slug = Column(String(60))
    duration = Column(Integer, nullable=False)
    max_group_size = Column(Integer, nullable=False)
    difficulty = Column(
        Enum(*DIFFICULTIES, name="tour_difficulty"), nullable=False
    )
    rating = Column(Float, nullable=False, server_default="4.5")
    ratings_quantity = Column(Integer, nullable=False, server_default="0")
    price = Column(Float, nullable=False)
    price_discount = Column(Float)
    summary = Column(Text, nullable=False)
    description = Column(Text)
    image_cover = Column(String(255), nullable=False)
    images = Column(PortableArray(Text))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    start_dates = Column(PortableArray(Date))
    secret_tour = Column(Boolean, nullable=False, server_default="0")
    start_location_type = Column(String(20), server_default="Point")
    # GeoJSON order: [lng, lat]
    start_location_coordinates = Column(PortableArray(Float))
    start_location_address = Column(Text)
    start_location_description = Column(Text)
    locations = Column(JSON().with_variant(JSONB(), "postgresql"))
    guides = Column(PortableArray(Integer))


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    photo = Column(String(255), server_default="default.jpg")
    role = Column(
        Enum(*ROLES, name="user_role"), nullable=False, server_default="user"
    )
    password = Column(String(255), nullable=False)
    password_changed_at = Column(DateTime(timezone=True))
    password_reset_token = Column(String(64), index=True)
    password_reset_expires = Column(DateTime(timezone=True))
    active = Column(Boolean, nullable=False, server_default="1")


class Review(Base):
    __tablename__ = "reviews"
    __table_args__ = (
        CheckConstraint("rating >= 1 AND rating <= 5", name="reviews_rating_range"),
        # one review per user per tour
        UniqueConstraint("tour_id", "user_id", name="reviews_tour_user_key"),
    )

    id = Column(Integer, primary_key=True, index=True)
    review = Column(Text, nullable=False)
    rating = Column(Float, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    tour_id = Column(
        Integer, ForeignKey("tours.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    tour_id = Column(Integer, ForeignKey("tours.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    price = Column(Float, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    paid = Column(Boolean, nullable=False, server_default="1")


# Name -> Table lookup used by the query builder and CRUD handlers
TABLES = {
    "tours": Tour.__table__,
    "users": User.__table__,
    "reviews": Review.__table__,
    "bookings": Booking.__table__,
}
