"""Transaction routes."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from logiflex_api.auth.api_key import get_current_user
from logiflex_api.db.session import get_db
from logiflex_api.ettn.signer import EDSService, get_eds_service
from logiflex_api.marketplace.transactions import TransactionService
from logiflex_api.models import User
from logiflex_api.notifications.outbox import NotificationOutbox
from logiflex_api.notifications.publisher import get_outbox

router = APIRouter(prefix="/v1", tags=["transactions"])


class TransactionStatusUpdate(BaseModel):
    """Transaction status change request."""

    status: str


class TransactionResponse(BaseModel):
    """Transaction response."""

    id: str
    cargo_id: str
    bid_id: str
    shipper_id: str
    carrier_id: str
    status: str
    pickup_confirmed: bool
    delivery_confirmed: bool
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


@router.get("/transactions", response_model=list[TransactionResponse])
async def list_transactions(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    eds: EDSService = Depends(get_eds_service),
):
    """List the caller's transactions."""
    return TransactionService(db, eds).list_for_user(user)


@router.get("/transactions/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(
    transaction_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    eds: EDSService = Depends(get_eds_service),
):
    """Get a transaction the caller is party to."""
    return TransactionService(db, eds).get(user, transaction_id)


@router.patch("/transactions/{transaction_id}/status", response_model=TransactionResponse)
async def update_transaction_status(
    transaction_id: str,
    update: TransactionStatusUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    eds: EDSService = Depends(get_eds_service),
    outbox: NotificationOutbox = Depends(get_outbox),
):
    """Advance a transaction one step through its lifecycle."""
    return TransactionService(db, eds, outbox).advance_status(user, transaction_id, update.status)
