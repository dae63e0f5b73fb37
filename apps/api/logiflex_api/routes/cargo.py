"""Cargo listing routes."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from logiflex_api.auth.api_key import get_current_user
from logiflex_api.db.session import get_db
from logiflex_api.marketplace.cargo import CargoService
from logiflex_api.models import User

router = APIRouter(prefix="/v1", tags=["cargo"])


class CargoCreate(BaseModel):
    """Cargo creation request."""

    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    category: str = Field(..., min_length=1)
    origin: str = Field(..., min_length=1)
    destination: str = Field(..., min_length=1)
    weight: Decimal
    price: Decimal
    pickup_date: datetime
    delivery_date: Optional[datetime] = None
    auction_end_date: Optional[datetime] = None


class CargoUpdate(BaseModel):
    """Cargo edit request; only the provided fields change."""

    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    category: Optional[str] = Field(None, min_length=1)
    origin: Optional[str] = Field(None, min_length=1)
    destination: Optional[str] = Field(None, min_length=1)
    weight: Optional[Decimal] = None
    price: Optional[Decimal] = None
    pickup_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    auction_end_date: Optional[datetime] = None


class CargoResponse(BaseModel):
    """Cargo response."""

    id: str
    user_id: str
    title: str
    description: Optional[str] = None
    category: str
    origin: str
    destination: str
    weight: float
    price: float
    pickup_date: datetime
    delivery_date: Optional[datetime] = None
    auction_end_date: Optional[datetime] = None
    status: str
    created_at: datetime

    class Config:
        from_attributes = True


@router.post("/cargo", response_model=CargoResponse, status_code=status.HTTP_201_CREATED)
async def create_cargo(
    cargo_data: CargoCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create a cargo listing."""
    return CargoService(db).create(user, cargo_data.model_dump())


@router.get("/cargo", response_model=list[CargoResponse])
async def list_cargo(
    status_filter: Optional[str] = Query(None, alias="status"),
    user_id: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """List cargo, newest first."""
    return CargoService(db).list(status=status_filter, user_id=user_id, limit=limit)


@router.get("/cargo/{cargo_id}", response_model=CargoResponse)
async def get_cargo(cargo_id: str, db: Session = Depends(get_db)):
    """Get a cargo listing."""
    return CargoService(db).get(cargo_id)


@router.patch("/cargo/{cargo_id}", response_model=CargoResponse)
async def update_cargo(
    cargo_id: str,
    changes: CargoUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Edit an active cargo listing (owner only)."""
    return CargoService(db).update(user, cargo_id, changes.model_dump(exclude_unset=True))


@router.post("/cargo/{cargo_id}/cancel", response_model=CargoResponse)
async def cancel_cargo(
    cargo_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Cancel an active cargo listing."""
    return CargoService(db).cancel(user, cargo_id)
