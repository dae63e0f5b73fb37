"""Cargo listings."""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from logiflex_api.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from logiflex_api.marketplace.state_machine import CargoStatus, UserRole, ensure_transition, parse_status
from logiflex_api.models import Cargo, User
from logiflex_api.utils.clock import as_naive_utc, utcnow

logger = logging.getLogger(__name__)

CARGO_FIELDS = (
    "title",
    "description",
    "category",
    "origin",
    "destination",
    "weight",
    "price",
    "pickup_date",
    "delivery_date",
    "auction_end_date",
)


class CargoService:
    """Create, browse, edit and cancel cargo listings."""

    def __init__(self, db: Session):
        """Initialize cargo service."""
        self.db = db

    @staticmethod
    def _validate(data: dict) -> dict:
        data = dict(data)
        for field in ("pickup_date", "delivery_date", "auction_end_date"):
            data[field] = as_naive_utc(data.get(field))
        for field in ("weight", "price"):
            if Decimal(str(data[field])) < 0:
                raise ValidationError(f"{field} must not be negative", field=field)
        if data.get("delivery_date") and data["delivery_date"] < data["pickup_date"]:
            raise ValidationError("delivery_date must not precede pickup_date", field="delivery_date")
        return data

    def create(self, user: User, data: dict) -> Cargo:
        """Publish a listing owned by the caller."""
        if user.role not in (UserRole.SHIPPER.value, UserRole.ADMIN.value):
            raise ForbiddenError("Only shippers can create cargo")
        data = self._validate(data)

        cargo = Cargo(user_id=user.id, status=CargoStatus.ACTIVE.value, **{k: data.get(k) for k in CARGO_FIELDS})
        self.db.add(cargo)
        self.db.commit()
        self.db.refresh(cargo)

        logger.info("Cargo created", extra={"cargo_id": cargo.id, "user_id": user.id})
        return cargo

    def get(self, cargo_id: str) -> Cargo:
        cargo = self.db.query(Cargo).filter(Cargo.id == cargo_id).first()
        if not cargo:
            raise NotFoundError(f"Cargo {cargo_id} not found")
        return cargo

    def list(self, status: Optional[str] = None, user_id: Optional[str] = None, limit: int = 100) -> list[Cargo]:
        query = self.db.query(Cargo)
        if status:
            query = query.filter(Cargo.status == parse_status(CargoStatus, status).value)
        if user_id:
            query = query.filter(Cargo.user_id == user_id)
        return query.order_by(Cargo.created_at.desc()).limit(limit).all()

    def update(self, user: User, cargo_id: str, changes: dict) -> Cargo:
        """Edit an active listing owned by the caller.

        Only the given fields change; the merged listing is validated as a whole.
        """
        cargo = self.get(cargo_id)
        if cargo.user_id != user.id:
            raise ForbiddenError("Not authorized to edit this cargo")
        if cargo.status != CargoStatus.ACTIVE.value:
            raise ConflictError(f"Cargo is {cargo.status} and can no longer be edited")

        unknown = set(changes) - set(CARGO_FIELDS)
        if unknown:
            raise ValidationError(f"Field {sorted(unknown)[0]} cannot be edited", field=sorted(unknown)[0])
        merged = {field: getattr(cargo, field) for field in CARGO_FIELDS}
        merged.update(changes)
        for field in ("title", "category", "origin", "destination", "weight", "price", "pickup_date"):
            if merged.get(field) in (None, ""):
                raise ValidationError(f"{field} is required", field=field)
        merged = self._validate(merged)

        for field in changes:
            setattr(cargo, field, merged[field])
        cargo.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(cargo)

        logger.info("Cargo updated", extra={"cargo_id": cargo.id, "user_id": user.id, "fields": sorted(changes)})
        return cargo

    def cancel(self, user: User, cargo_id: str) -> Cargo:
        """Withdraw an active listing."""
        cargo = self.get(cargo_id)
        if cargo.user_id != user.id and user.role != UserRole.ADMIN.value:
            raise ForbiddenError("Not authorized to cancel this cargo")
        ensure_transition(CargoStatus(cargo.status), CargoStatus.CANCELLED, entity="cargo")

        cargo.status = CargoStatus.CANCELLED.value
        cargo.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(cargo)

        logger.info("Cargo cancelled", extra={"cargo_id": cargo.id, "user_id": user.id})
        return cargo
