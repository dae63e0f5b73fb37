"""Bids and the accept/reject decision."""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from logiflex_api.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from logiflex_api.marketplace.state_machine import (
    BidStatus,
    CargoStatus,
    TransactionStatus,
    UserRole,
    ensure_transition,
    parse_status,
)
from logiflex_api.models import Bid, Cargo, Transaction, User
from logiflex_api.notifications.outbox import NotificationOutbox
from logiflex_api.reputation.service import RWSService
from logiflex_api.utils.clock import utcnow
from logiflex_api.utils.metrics import bid_decisions

logger = logging.getLogger(__name__)


class BidService:
    """Carrier bids and the cargo owner's decision on them."""

    def __init__(self, db: Session, outbox: NotificationOutbox = None):
        """Initialize bid service."""
        self.db = db
        self.outbox = outbox if outbox is not None else NotificationOutbox()

    def _get_cargo(self, cargo_id: str) -> Cargo:
        cargo = self.db.query(Cargo).filter(Cargo.id == cargo_id).first()
        if not cargo:
            raise NotFoundError(f"Cargo {cargo_id} not found")
        return cargo

    def place_bid(self, user: User, data: dict) -> Bid:
        """Offer to carry an active cargo."""
        if user.role not in (UserRole.CARRIER.value, UserRole.ADMIN.value):
            raise ForbiddenError("Only carriers can place bids")
        if Decimal(str(data["bid_amount"])) <= 0:
            raise ValidationError("bid_amount must be positive", field="bid_amount")

        cargo = self._get_cargo(data["cargo_id"])
        if cargo.user_id == user.id:
            raise ForbiddenError("Cannot bid on your own cargo")
        if cargo.status != CargoStatus.ACTIVE.value:
            raise ConflictError("Cargo is not accepting bids")

        bid = Bid(
            cargo_id=cargo.id,
            carrier_id=user.id,
            bid_amount=data["bid_amount"],
            delivery_time=data["delivery_time"],
            vehicle_type=data["vehicle_type"],
            message=data.get("message"),
            status=BidStatus.PENDING.value,
        )
        self.db.add(bid)
        self.db.commit()
        self.db.refresh(bid)

        logger.info("Bid placed", extra={"bid_id": bid.id, "cargo_id": cargo.id, "carrier_id": user.id})
        self.outbox.publish(
            cargo.user_id,
            "new_bid",
            "Новая ставка на ваш груз",
            f"Перевозчик {user.company_name or user.display_name} разместил ставку в размере {bid.bid_amount}₸",
            f"/cargo/{cargo.id}",
        )
        return bid

    def list_for_cargo(self, cargo_id: str) -> list[Bid]:
        self._get_cargo(cargo_id)
        return self.db.query(Bid).filter(Bid.cargo_id == cargo_id).order_by(Bid.created_at.desc()).all()

    def list_by_carrier(self, carrier_id: str) -> list[Bid]:
        return self.db.query(Bid).filter(Bid.carrier_id == carrier_id).order_by(Bid.created_at.desc()).all()

    def decide(self, user: User, bid_id: str, status: str) -> tuple[Bid, Optional[Transaction]]:
        """Accept or reject a pending bid.

        Returns the bid and, on acceptance, the transaction it created.
        """
        target = parse_status(BidStatus, status)
        if target == BidStatus.PENDING:
            raise ValidationError("Status must be 'accepted' or 'rejected'", field="status")

        bid = self.db.query(Bid).filter(Bid.id == bid_id).first()
        if not bid:
            raise NotFoundError(f"Bid {bid_id} not found")
        cargo = self._get_cargo(bid.cargo_id)
        if cargo.user_id != user.id and user.role != UserRole.ADMIN.value:
            raise ForbiddenError("Only cargo owner can accept or reject bids")
        if bid.status != BidStatus.PENDING.value:
            raise ConflictError(f"Bid is already {bid.status}")
        ensure_transition(BidStatus(bid.status), target, entity="bid")

        if target == BidStatus.ACCEPTED:
            transaction = self._accept(bid, cargo)
        else:
            transaction = None
            self._reject(bid)

        bid_decisions.labels(status=target.value).inc()
        logger.info(
            f"Bid {target.value}",
            extra={"bid_id": bid.id, "cargo_id": cargo.id, "decided_by": user.id},
        )
        return bid, transaction

    def _accept(self, bid: Bid, cargo: Cargo) -> Transaction:
        if bid.carrier_id == cargo.user_id:
            raise ConflictError("Shipper and carrier must be different users")
        if cargo.status != CargoStatus.ACTIVE.value:
            raise ConflictError("Cargo is no longer accepting bids")
        already_accepted = (
            self.db.query(Bid.id)
            .filter(Bid.cargo_id == cargo.id, Bid.status == BidStatus.ACCEPTED.value)
            .first()
        )
        if already_accepted:
            raise ConflictError("Another bid has already been accepted for this cargo")

        now = utcnow()
        try:
            # Conditional updates: a concurrent decision leaves a zero rowcount
            bid_updated = (
                self.db.query(Bid)
                .filter(Bid.id == bid.id, Bid.status == BidStatus.PENDING.value)
                .update({Bid.status: BidStatus.ACCEPTED.value, Bid.updated_at: now}, synchronize_session=False)
            )
            if not bid_updated:
                raise ConflictError("Bid is no longer pending")
            cargo_updated = (
                self.db.query(Cargo)
                .filter(Cargo.id == cargo.id, Cargo.status == CargoStatus.ACTIVE.value)
                .update({Cargo.status: CargoStatus.IN_PROGRESS.value, Cargo.updated_at: now}, synchronize_session=False)
            )
            if not cargo_updated:
                raise ConflictError("Cargo is no longer accepting bids")

            transaction = Transaction(
                cargo_id=cargo.id,
                bid_id=bid.id,
                shipper_id=cargo.user_id,
                carrier_id=bid.carrier_id,
                status=TransactionStatus.CREATED.value,
            )
            self.db.add(transaction)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("A transaction already exists for this bid")
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(bid)
        self.db.refresh(cargo)
        self.db.refresh(transaction)

        self.outbox.publish(
            bid.carrier_id,
            "bid_accepted",
            "Ваша ставка принята!",
            f'Ваша ставка на груз "{cargo.title}" была принята',
            f"/transactions/{transaction.id}",
        )
        RWSService(self.db).recompute_best_effort([bid.carrier_id], trigger="bid_accepted")
        return transaction

    def _reject(self, bid: Bid) -> None:
        try:
            updated = (
                self.db.query(Bid)
                .filter(Bid.id == bid.id, Bid.status == BidStatus.PENDING.value)
                .update({Bid.status: BidStatus.REJECTED.value, Bid.updated_at: utcnow()}, synchronize_session=False)
            )
            if not updated:
                raise ConflictError("Bid is no longer pending")
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(bid)
        self.outbox.publish(
            bid.carrier_id,
            "bid_rejected",
            "Ваша ставка отклонена",
            f'Ваша ставка на груз "{bid.cargo.title}" была отклонена',
            f"/cargo/{bid.cargo_id}",
        )
