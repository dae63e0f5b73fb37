"""E-TTN (electronic waybill) routes."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from logiflex_api.auth.api_key import get_current_user
from logiflex_api.db.session import get_db
from logiflex_api.ettn.service import ETTNService
from logiflex_api.ettn.signer import EDSService, get_eds_service
from logiflex_api.models import User
from logiflex_api.notifications.outbox import NotificationOutbox
from logiflex_api.notifications.publisher import get_outbox

router = APIRouter(prefix="/v1", tags=["ettn"])


class ETTNCreate(BaseModel):
    """E-TTN creation request."""

    transaction_id: str


class ETTNResponse(BaseModel):
    """E-TTN response."""

    id: str
    transaction_id: str
    ettn_number: str
    cargo_description: str
    origin: str
    destination: str
    weight: float
    shipper_id: str
    carrier_id: str
    shipper_signature: Optional[str] = None
    carrier_signature: Optional[str] = None
    shipper_signed_at: Optional[datetime] = None
    carrier_signed_at: Optional[datetime] = None
    status: str
    created_at: datetime

    class Config:
        from_attributes = True


class SignatureResponse(BaseModel):
    """Digital signature audit record."""

    id: str
    ettn_id: str
    user_id: str
    signature_data: str
    certificate_id: str
    certificate_expiry: Optional[datetime] = None
    signed_at: datetime
    is_valid: bool

    class Config:
        from_attributes = True


class SignatureVerification(BaseModel):
    """Outcome of a (mock) signature verification."""

    signature_id: str
    verified: bool
    certificate_valid: bool
    mock: bool
    notice: str


@router.post("/ettn", response_model=ETTNResponse, status_code=status.HTTP_201_CREATED)
async def create_ettn(
    ettn_data: ETTNCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    eds: EDSService = Depends(get_eds_service),
    outbox: NotificationOutbox = Depends(get_outbox),
):
    """Create the E-TTN for a transaction."""
    return ETTNService(db, eds, outbox).create(ettn_data.transaction_id, user)


@router.get("/ettn/{ettn_id}", response_model=ETTNResponse)
async def get_ettn(
    ettn_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    eds: EDSService = Depends(get_eds_service),
):
    """Get an E-TTN."""
    return ETTNService(db, eds).get(ettn_id, user)


@router.get("/transactions/{transaction_id}/ettn", response_model=ETTNResponse)
async def get_ettn_for_transaction(
    transaction_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    eds: EDSService = Depends(get_eds_service),
):
    """Get the E-TTN of a transaction."""
    return ETTNService(db, eds).get_by_transaction(transaction_id, user)


@router.get("/ettn/{ettn_id}/signatures", response_model=list[SignatureResponse])
async def list_ettn_signatures(
    ettn_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    eds: EDSService = Depends(get_eds_service),
):
    """List the signatures applied to an E-TTN."""
    return ETTNService(db, eds).list_signatures(ettn_id, user)


@router.patch("/ettn/{ettn_id}/sign", response_model=ETTNResponse)
async def sign_ettn(
    ettn_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    eds: EDSService = Depends(get_eds_service),
    outbox: NotificationOutbox = Depends(get_outbox),
):
    """Sign an E-TTN as its shipper or carrier."""
    return await ETTNService(db, eds, outbox).sign(ettn_id, user)


@router.post("/ettn/signatures/{signature_id}/validate", response_model=SignatureResponse)
async def validate_signature(
    signature_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    eds: EDSService = Depends(get_eds_service),
):
    """Re-check a signature's certificate expiry."""
    return ETTNService(db, eds).validate_signature(signature_id, user)


@router.post("/ettn/signatures/{signature_id}/verify", response_model=SignatureVerification)
async def verify_signature(
    signature_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    eds: EDSService = Depends(get_eds_service),
):
    """Verify a signature with the (mock) signature service."""
    return await ETTNService(db, eds).verify_signature(signature_id, user)
