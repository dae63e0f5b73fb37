"""Bid routes."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from logiflex_api.auth.api_key import get_current_user
from logiflex_api.db.session import get_db
from logiflex_api.marketplace.bids import BidService
from logiflex_api.models import User
from logiflex_api.notifications.outbox import NotificationOutbox
from logiflex_api.notifications.publisher import get_outbox
from logiflex_api.routes.transactions import TransactionResponse

router = APIRouter(prefix="/v1", tags=["bids"])


class BidCreate(BaseModel):
    """Bid placement request."""

    cargo_id: str
    bid_amount: Decimal
    delivery_time: str = Field(..., min_length=1)
    vehicle_type: str = Field(..., min_length=1)
    message: Optional[str] = None


class BidStatusUpdate(BaseModel):
    """Bid decision request: "accepted" or "rejected"."""

    status: str


class BidResponse(BaseModel):
    """Bid response."""

    id: str
    cargo_id: str
    carrier_id: str
    bid_amount: float
    delivery_time: str
    vehicle_type: str
    message: Optional[str] = None
    status: str
    created_at: datetime

    class Config:
        from_attributes = True


class BidDecisionResponse(BaseModel):
    """Decided bid plus the transaction an acceptance created."""

    bid: BidResponse
    transaction: Optional[TransactionResponse] = None


@router.post("/bids", response_model=BidResponse, status_code=status.HTTP_201_CREATED)
async def place_bid(
    bid_data: BidCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    outbox: NotificationOutbox = Depends(get_outbox),
):
    """Place a bid on an active cargo."""
    return BidService(db, outbox).place_bid(user, bid_data.model_dump())


@router.get("/cargo/{cargo_id}/bids", response_model=list[BidResponse])
async def list_bids_for_cargo(
    cargo_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List bids on a cargo."""
    return BidService(db).list_for_cargo(cargo_id)


@router.get("/bids/my-bids", response_model=list[BidResponse])
async def list_my_bids(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List the caller's own bids."""
    return BidService(db).list_by_carrier(user.id)


@router.patch("/bids/{bid_id}/status", response_model=BidDecisionResponse)
async def decide_bid(
    bid_id: str,
    update: BidStatusUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    outbox: NotificationOutbox = Depends(get_outbox),
):
    """Accept or reject a pending bid."""
    bid, transaction = BidService(db, outbox).decide(user, bid_id, update.status)
    return {"bid": bid, "transaction": transaction}
