"""User profile and analytics routes."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from logiflex_api.auth.api_key import get_current_user
from logiflex_api.db.session import get_db
from logiflex_api.marketplace.users import UserService
from logiflex_api.models import User

router = APIRouter(prefix="/v1", tags=["users"])


class UserResponse(BaseModel):
    """User response."""

    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str
    company_name: Optional[str] = None
    phone: Optional[str] = None
    bin: Optional[str] = None
    iin: Optional[str] = None
    is_verified: bool
    rws_score: int
    is_recommended: bool
    eds_cert_id: Optional[str] = None
    eds_cert_expiry: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ProfileUpdate(BaseModel):
    """Profile edit request; empty strings clear a field."""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company_name: Optional[str] = None
    phone: Optional[str] = Field(None, pattern=r"^(\+?[0-9]{10,15})?$")
    bin: Optional[str] = Field(None, pattern=r"^([0-9]{12})?$")
    iin: Optional[str] = Field(None, pattern=r"^([0-9]{12})?$")

    @field_validator("first_name", "last_name", "company_name")
    @classmethod
    def strip_names(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v is not None else v


class RoleUpdate(BaseModel):
    """Role assignment request."""

    role: str


class DashboardResponse(BaseModel):
    """Dashboard counters."""

    active_cargo: int
    in_progress_cargo: int
    completed_cargo: int
    cancelled_cargo: int
    total_bids: int
    total_transactions: int
    rws_score: int


@router.get("/users/me", response_model=UserResponse)
async def get_me(user: User = Depends(get_current_user)):
    """Get the calling user."""
    return user


@router.patch("/users/me/profile", response_model=UserResponse)
async def update_profile(
    profile: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Update the caller's profile."""
    return UserService(db).update_profile(user, profile.model_dump(exclude_unset=True))


@router.patch("/users/me/role", response_model=UserResponse)
async def switch_my_role(
    update: RoleUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Switch the caller between shipper and carrier."""
    return UserService(db).switch_role(user, update.role)


@router.patch("/users/{user_id}/role", response_model=UserResponse)
async def change_role(
    user_id: str,
    update: RoleUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Assign a role to a user (admin only)."""
    return UserService(db).change_role(user, user_id, update.role)


@router.get("/analytics/dashboard", response_model=DashboardResponse)
async def get_dashboard(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Dashboard counters for the caller."""
    return UserService(db).dashboard(user)
