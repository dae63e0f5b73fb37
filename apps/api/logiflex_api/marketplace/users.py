"""User profiles and the per-user dashboard."""

import logging

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from logiflex_api.errors import ForbiddenError, NotFoundError, ValidationError
from logiflex_api.marketplace.state_machine import CargoStatus, UserRole, parse_status
from logiflex_api.models import Bid, Cargo, Transaction, User
from logiflex_api.utils.clock import utcnow

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("first_name", "last_name", "company_name", "phone", "bin", "iin")
SELF_SERVICE_ROLES = (UserRole.SHIPPER, UserRole.CARRIER)


class UserService:
    """Profile edits, role changes and dashboard counters."""

    def __init__(self, db: Session):
        self.db = db

    def update_profile(self, user: User, changes: dict) -> User:
        """Apply the provided profile fields; empty strings clear a field."""
        for field in PROFILE_FIELDS:
            if field in changes:
                setattr(user, field, changes[field] or None)
        user.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(user)
        return user

    def switch_role(self, user: User, role: str) -> User:
        """Self-service switch between the shipper and carrier roles."""
        target_role = parse_status(UserRole, role, field="role")
        if target_role not in SELF_SERVICE_ROLES:
            raise ValidationError("Role must be 'shipper' or 'carrier'", field="role")

        user.role = target_role.value
        user.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(user)
        logger.info("User switched role", extra={"user_id": user.id, "role": user.role})
        return user

    def change_role(self, admin: User, user_id: str, role: str) -> User:
        """Admin-only role assignment."""
        if admin.role != UserRole.ADMIN.value:
            raise ForbiddenError("Only administrators can change roles")
        target_role = parse_status(UserRole, role, field="role")
        target = self.db.query(User).filter(User.id == user_id).first()
        if not target:
            raise NotFoundError(f"User {user_id} not found")

        target.role = target_role.value
        target.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(target)
        logger.info("User role changed", extra={"user_id": target.id, "role": target.role, "changed_by": admin.id})
        return target

    def dashboard(self, user: User) -> dict:
        """Counters shown on the user's dashboard."""
        cargo_counts = dict(
            self.db.query(Cargo.status, func.count(Cargo.id))
            .filter(Cargo.user_id == user.id)
            .group_by(Cargo.status)
            .all()
        )

        if user.role == UserRole.CARRIER.value:
            total_bids = self.db.query(func.count(Bid.id)).filter(Bid.carrier_id == user.id).scalar()
        else:
            total_bids = (
                self.db.query(func.count(Bid.id))
                .join(Cargo, Bid.cargo_id == Cargo.id)
                .filter(Cargo.user_id == user.id)
                .scalar()
            )

        total_transactions = (
            self.db.query(func.count(Transaction.id))
            .filter(or_(Transaction.shipper_id == user.id, Transaction.carrier_id == user.id))
            .scalar()
        )

        return {
            "active_cargo": cargo_counts.get(CargoStatus.ACTIVE.value, 0),
            "in_progress_cargo": cargo_counts.get(CargoStatus.IN_PROGRESS.value, 0),
            "completed_cargo": cargo_counts.get(CargoStatus.COMPLETED.value, 0),
            "cancelled_cargo": cargo_counts.get(CargoStatus.CANCELLED.value, 0),
            "total_bids": total_bids or 0,
            "total_transactions": total_transactions or 0,
            "rws_score": user.rws_score or 0,
        }
