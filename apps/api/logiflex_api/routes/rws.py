"""Reputation (RWS) routes."""

from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from logiflex_api.auth.api_key import get_current_user
from logiflex_api.db.session import get_db
from logiflex_api.errors import NotFoundError
from logiflex_api.models import User
from logiflex_api.reputation.service import RatingService

router = APIRouter(prefix="/v1", tags=["rws"])


class RatingCreate(BaseModel):
    """Peer rating of the counterparty on a completed transaction."""

    user_id: str
    transaction_id: str
    on_time_delivery: int = Field(..., ge=1, le=5)
    cargo_condition: int = Field(..., ge=1, le=5)
    communication: int = Field(..., ge=1, le=5)
    documentation: int = Field(..., ge=1, le=5)


class RatingResponse(BaseModel):
    """Stored rating."""

    id: str
    user_id: str
    rater_id: str
    transaction_id: str
    on_time_delivery: int
    cargo_condition: int
    communication: int
    documentation: int
    overall_score: float
    created_at: datetime

    class Config:
        from_attributes = True


class RWSBreakdown(BaseModel):
    """Derived reputation fields."""

    rws_score: int
    otd_rate: float
    acceptance_rate: float
    avg_rating: float
    reliability_score: float
    total_transactions: int
    on_time_deliveries: int
    late_deliveries: int
    total_bids: int
    accepted_bids: int
    is_recommended: bool


class RatingSubmitResponse(BaseModel):
    """Rating plus the rated user's recomputed reputation."""

    metric: RatingResponse
    rws: RWSBreakdown


class RWSSummary(BaseModel):
    """Ratings received and the current score."""

    user_id: str
    rws_score: int
    ratings: list[RatingResponse]


class RWSExtended(BaseModel):
    """Stored reputation fields and ratings received."""

    user_id: str
    rws_score: int
    otd_rate: float
    acceptance_rate: float
    reliability_score: float
    total_transactions: int
    on_time_deliveries: int
    late_deliveries: int
    total_bids: int
    accepted_bids: int
    is_recommended: bool
    ratings: list[RatingResponse]


@router.post("/rws", response_model=RatingSubmitResponse, status_code=status.HTTP_201_CREATED)
async def submit_rating(
    rating: RatingCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Rate the other party of a completed transaction."""
    scores = rating.model_dump(exclude={"user_id", "transaction_id"})
    metric, metrics = RatingService(db).submit_rating(user, rating.user_id, rating.transaction_id, scores)
    return {"metric": metric, "rws": metrics.as_dict()}


@router.get("/rws/{user_id}", response_model=RWSSummary)
async def get_rws(user_id: str, db: Session = Depends(get_db)):
    """Ratings received by a user and their score."""
    target = db.query(User).filter(User.id == user_id).first()
    ratings = RatingService(db).ratings_for_user(user_id)
    return {"user_id": user_id, "rws_score": target.rws_score if target else 0, "ratings": ratings}


@router.get("/rws/{user_id}/extended", response_model=RWSExtended)
async def get_rws_extended(
    user_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Full reputation breakdown of a user."""
    target = db.query(User).filter(User.id == user_id).first()
    if not target:
        raise NotFoundError(f"User {user_id} not found")
    return {
        "user_id": target.id,
        "rws_score": target.rws_score or 0,
        "otd_rate": float(target.otd_rate or 0),
        "acceptance_rate": float(target.acceptance_rate or 0),
        "reliability_score": float(target.reliability_score or 0),
        "total_transactions": target.total_transactions or 0,
        "on_time_deliveries": target.on_time_deliveries or 0,
        "late_deliveries": target.late_deliveries or 0,
        "total_bids": target.total_bids or 0,
        "accepted_bids": target.accepted_bids or 0,
        "is_recommended": bool(target.is_recommended),
        "ratings": RatingService(db).ratings_for_user(user_id),
    }
