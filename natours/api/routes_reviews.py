"""
Review routes. Mounted twice: at /reviews and nested under
/tours/{tour_id}/reviews, where ``tour_id`` scopes listing and creation.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from natours.api import handler_factory as factory
from natours.core.errors import AppError
from natours.db.database import get_db
from natours.db.repositories import ReviewRepository
from natours.services.auth import protect

router = APIRouter(tags=["reviews"], dependencies=[Depends(protect)])


class ReviewCreate(BaseModel):
    review: str = Field(..., min_length=1)
    rating: float = Field(..., ge=1, le=5)
    tour_id: Optional[int] = None


class ReviewUpdate(BaseModel):
    review: Optional[str] = Field(None, min_length=1)
    rating: Optional[float] = Field(None, ge=1, le=5)


def recalc_tour_ratings(db: Session, review: Dict[str, Any]) -> None:
    ReviewRepository(db).calc_tour_ratings(review["tour_id"])


_create_review = factory.create_one(
    "reviews", ["review", "rating", "tour_id", "user_id"], after=recalc_tour_ratings
)
_get_review = factory.get_one("reviews")
_update_review = factory.update_one("reviews", ["review", "rating"], after=recalc_tour_ratings)
_delete_review = factory.delete_one("reviews", after=recalc_tour_ratings)


@router.get("")
def get_all_reviews(tour_id: Optional[int] = None, db: Session = Depends(get_db)):
    reviews = ReviewRepository(db).list_with_authors(tour_id=tour_id)
    return {"status": "success", "results": len(reviews), "data": {"reviews": reviews}}


@router.post("", status_code=201)
def create_review(
    review: ReviewCreate,
    tour_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: Dict[str, Any] = Depends(protect),
):
    payload = review.model_dump(exclude_unset=True)
    # nested route wins over the body
    if tour_id is not None:
        payload["tour_id"] = tour_id
    if payload.get("tour_id") is None:
        raise AppError("A review must belong to a tour.", 400)
    payload["user_id"] = current_user["id"]
    return _create_review(db, payload)


@router.get("/{id}")
def get_review(id: int, db: Session = Depends(get_db)):
    return _get_review(db, id)


@router.patch("/{id}")
def update_review(id: int, review: ReviewUpdate, db: Session = Depends(get_db)):
    return _update_review(db, id, review.model_dump(exclude_unset=True))


@router.delete("/{id}", status_code=204)
def delete_review(id: int, db: Session = Depends(get_db)):
    _delete_review(db, id)
    return Response(status_code=204)
