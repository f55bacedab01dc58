"""
Tour routes: CRUD through the generic handlers, plus aggregate and
geospatial endpoints backed by TourRepository.
"""

from datetime import date
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.orm import Session
import logging

from natours.api import handler_factory as factory
from natours.core.errors import AppError
from natours.db.api_features import parse_query_string
from natours.db.database import get_db
from natours.db.repositories import EARTH_RADIUS, TourRepository
from natours.services.auth import restrict_to

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tours", tags=["tours"])

Difficulty = Literal["easy", "medium", "difficult"]


# ============================================================================
# REQUEST SCHEMAS
# ============================================================================

class Location(BaseModel):
    type: Literal["Point"] = "Point"
    coordinates: List[float]
    address: Optional[str] = None
    description: Optional[str] = None
    day: Optional[int] = None


class TourCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=40)
    duration: int = Field(..., gt=0)
    max_group_size: int = Field(..., gt=0)
    difficulty: Difficulty
    price: float = Field(..., gt=0)
    price_discount: Optional[float] = None
    summary: str = Field(..., min_length=1)
    description: Optional[str] = None
    image_cover: str = Field(..., min_length=1)
    images: Optional[List[str]] = None
    start_dates: Optional[List[date]] = None
    rating: Optional[float] = Field(None, ge=1, le=5)
    ratings_quantity: Optional[int] = Field(None, ge=0)
    slug: Optional[str] = None
    secret_tour: Optional[bool] = None
    start_location_type: Optional[Literal["Point"]] = None
    start_location_coordinates: Optional[List[float]] = None
    start_location_address: Optional[str] = None
    start_location_description: Optional[str] = None
    locations: Optional[List[Location]] = None
    guides: Optional[List[int]] = None

    @model_validator(mode="after")
    def discount_below_price(self):
        if self.price_discount is not None and self.price_discount >= self.price:
            raise ValueError("Discount price must be lower than the price")
        return self


class TourUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=40)
    duration: Optional[int] = Field(None, gt=0)
    max_group_size: Optional[int] = Field(None, gt=0)
    difficulty: Optional[Difficulty] = None
    price: Optional[float] = Field(None, gt=0)
    price_discount: Optional[float] = None
    summary: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    image_cover: Optional[str] = Field(None, min_length=1)
    images: Optional[List[str]] = None
    start_dates: Optional[List[date]] = None
    rating: Optional[float] = Field(None, ge=1, le=5)
    secret_tour: Optional[bool] = None

    @model_validator(mode="after")
    def discount_below_price(self):
        if (
            self.price is not None
            and self.price_discount is not None
            and self.price_discount >= self.price
        ):
            raise ValueError("Discount price must be lower than the price")
        return self


TOUR_CREATE_FIELDS = list(TourCreate.model_fields)
TOUR_UPDATE_FIELDS = list(TourUpdate.model_fields)


def add_virtuals(tour: Dict[str, Any]) -> Dict[str, Any]:
    if tour.get("duration") is not None:
        tour["duration_in_weeks"] = tour["duration"] / 7
    return tour


_get_all_tours = factory.get_all("tours", virtuals=add_virtuals)
_get_tour = factory.get_one("tours", populate="reviews")
_create_tour = factory.create_one("tours", TOUR_CREATE_FIELDS, json_columns=["locations"])
_update_tour = factory.update_one("tours", TOUR_UPDATE_FIELDS)
_delete_tour = factory.delete_one("tours")


def _parse_latlng(latlng: str):
    try:
        lat, lng = (float(part) for part in latlng.split(","))
    except ValueError:
        raise AppError("Please provide latitude and longitude in the format lat,lng.", 400) from None
    return lat, lng


def _check_unit(unit: str) -> str:
    if unit not in EARTH_RADIUS:
        raise AppError("Unit must be either 'mi' or 'km'.", 400)
    return unit


# ============================================================================
# ALIASES & AGGREGATES
# ============================================================================

@router.get("/top-2-cheap")
def top_cheap_tours(request: Request, db: Session = Depends(get_db)):
    """The two best-rated tours, cheapest first on ties."""
    query = parse_query_string(request.query_params.multi_items())
    query.update(
        limit="2",
        sort="-rating,price",
        fields="name,price,rating,summary,difficulty",
    )
    return _get_all_tours(db, query)


@router.get("/tour-stats")
def get_tour_stats(db: Session = Depends(get_db)):
    """Per-difficulty statistics for tours rated 4.5 and above."""
    stats = TourRepository(db).get_tour_stats()
    return {"status": "success", "data": stats}


@router.get("/monthly-plan/{year}")
def get_monthly_plan(
    year: int,
    db: Session = Depends(get_db),
    current_user: Dict[str, Any] = Depends(restrict_to("admin", "lead-guide", "guide")),
):
    """Tour starts per month of a year, busiest month first."""
    plan = TourRepository(db).get_monthly_plan(year)
    return {"status": "success", "results": len(plan), "data": plan}


@router.get("/tours-within/{distance}/center/{latlng}/unit/{unit}")
def get_tours_within(
    distance: float,
    latlng: str,
    unit: str,
    db: Session = Depends(get_db),
):
    """Tours whose start location lies within ``distance`` of ``latlng``."""
    lat, lng = _parse_latlng(latlng)
    tours = TourRepository(db).get_tours_within(lat, lng, distance, _check_unit(unit))
    return {"status": "success", "results": len(tours), "data": {"tours": tours}}


@router.get("/distances/{latlng}/unit/{unit}")
def get_distances(latlng: str, unit: str, db: Session = Depends(get_db)):
    """Distance from ``latlng`` to every tour's start location, nearest first."""
    lat, lng = _parse_latlng(latlng)
    distances = TourRepository(db).get_distances(lat, lng, _check_unit(unit))
    return {"status": "success", "data": {"data": distances}}


# ============================================================================
# CRUD
# ============================================================================

@router.get("")
def get_all_tours(request: Request, db: Session = Depends(get_db)):
    """
    List tours. Supports filtering (``price[gte]=500``), ``sort``,
    ``fields``, ``page`` and ``limit``.
    """
    query = parse_query_string(request.query_params.multi_items())
    return _get_all_tours(db, query)


@router.post("", status_code=201)
def create_tour(
    tour: TourCreate,
    db: Session = Depends(get_db),
    current_user: Dict[str, Any] = Depends(restrict_to("admin", "lead-guide")),
):
    return _create_tour(db, tour.model_dump(exclude_unset=True, mode="python"))


@router.get("/{id}")
def get_tour(id: int, db: Session = Depends(get_db)):
    return _get_tour(db, id)


@router.patch("/{id}")
def update_tour(
    id: int,
    tour: TourUpdate,
    db: Session = Depends(get_db),
    current_user: Dict[str, Any] = Depends(restrict_to("admin", "lead-guide")),
):
    return _update_tour(db, id, tour.model_dump(exclude_unset=True))


@router.delete("/{id}", status_code=204)
def delete_tour(
    id: int,
    db: Session = Depends(get_db),
    current_user: Dict[str, Any] = Depends(restrict_to("admin", "lead-guide")),
):
    _delete_tour(db, id)
    return Response(status_code=204)
