"""RWS persistence and peer rating submission."""

import logging
from decimal import Decimal
from typing import Iterable

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from logiflex_api.errors import ConflictError, ForbiddenError, MarketplaceError, NotFoundError, ValidationError
from logiflex_api.marketplace.state_machine import TransactionStatus
from logiflex_api.models import Bid, Cargo, RWSMetric, Transaction, User
from logiflex_api.reputation.calculator import DeliveryRecord, RWSMetrics, compute_rws, round_half_up
from logiflex_api.utils.clock import utcnow
from logiflex_api.utils.metrics import rws_recomputations

logger = logging.getLogger(__name__)

SUB_SCORE_FIELDS = ("on_time_delivery", "cargo_condition", "communication", "documentation")


class RWSService:
    """Recompute and store a user's reputation fields.

    A full recompute is the only way these fields change; nothing patches
    them incrementally.
    """

    def __init__(self, db: Session):
        """Initialize RWS service."""
        self.db = db

    def _get_user(self, user_id: str) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def _deliveries(self, user_id: str) -> list[DeliveryRecord]:
        rows = (
            self.db.query(Transaction.completed_at, Cargo.delivery_date)
            .select_from(Transaction)
            .outerjoin(Cargo, Transaction.cargo_id == Cargo.id)
            .filter(
                Transaction.status == TransactionStatus.COMPLETED.value,
                or_(Transaction.shipper_id == user_id, Transaction.carrier_id == user_id),
            )
            .all()
        )
        return [DeliveryRecord(completed_at=completed_at, delivery_date=delivery_date) for completed_at, delivery_date in rows]

    def _bid_statuses(self, user_id: str) -> list[str]:
        return [status for (status,) in self.db.query(Bid.status).filter(Bid.carrier_id == user_id).all()]

    def _rating_scores(self, user_id: str) -> list[float]:
        return [float(score) for (score,) in self.db.query(RWSMetric.overall_score).filter(RWSMetric.user_id == user_id).all()]

    def calculate(self, user_id: str) -> RWSMetrics:
        """Compute metrics for a user without writing anything."""
        self._get_user(user_id)
        return compute_rws(
            self._deliveries(user_id),
            self._bid_statuses(user_id),
            self._rating_scores(user_id),
        )

    def update_user_rws(self, user_id: str, trigger: str = "manual") -> RWSMetrics:
        """Recompute and overwrite every derived field on the user record."""
        user = self._get_user(user_id)
        metrics = compute_rws(
            self._deliveries(user_id),
            self._bid_statuses(user_id),
            self._rating_scores(user_id),
        )

        user.rws_score = metrics.rws_score
        user.otd_rate = Decimal(str(metrics.otd_rate))
        user.acceptance_rate = Decimal(str(metrics.acceptance_rate))
        user.reliability_score = Decimal(str(metrics.reliability_score))
        user.total_transactions = metrics.total_transactions
        user.on_time_deliveries = metrics.on_time_deliveries
        user.late_deliveries = metrics.late_deliveries
        user.total_bids = metrics.total_bids
        user.accepted_bids = metrics.accepted_bids
        user.is_recommended = metrics.is_recommended
        user.updated_at = utcnow()
        self.db.flush()

        rws_recomputations.labels(trigger=trigger).inc()
        logger.info(
            "RWS recomputed",
            extra={"user_id": user_id, "trigger": trigger, "rws_score": metrics.rws_score},
        )
        return metrics

    def recompute_best_effort(self, user_ids: Iterable[str], trigger: str) -> None:
        """Recompute after a committed state change.

        The triggering write is already durable, so a failure here is logged
        and left for ``recompute-rws`` or the worker to repair.
        """
        for user_id in dict.fromkeys(user_ids):
            try:
                self.update_user_rws(user_id, trigger=trigger)
                self.db.commit()
            except (MarketplaceError, SQLAlchemyError) as e:
                self.db.rollback()
                logger.error(
                    f"RWS recompute failed for user {user_id}: {e}",
                    exc_info=True,
                    extra={"user_id": user_id, "trigger": trigger},
                )

    def recompute_all(self) -> int:
        """Recompute every user; returns the number of users processed."""
        count = 0
        for (user_id,) in self.db.query(User.id).all():
            self.update_user_rws(user_id, trigger="backfill")
            count += 1
        self.db.commit()
        return count


class RatingService:
    """Peer ratings: one per (rater, transaction), immutable."""

    def __init__(self, db: Session):
        """Initialize rating service."""
        self.db = db
        self.rws = RWSService(db)

    @staticmethod
    def _validate_scores(scores: dict) -> None:
        for field in SUB_SCORE_FIELDS:
            value = scores.get(field)
            if not isinstance(value, int) or isinstance(value, bool) or not 1 <= value <= 5:
                raise ValidationError(f"{field} must be an integer between 1 and 5", field=field)

    def submit_rating(
        self,
        rater: User,
        user_id: str,
        transaction_id: str,
        scores: dict,
    ) -> tuple[RWSMetric, RWSMetrics]:
        """Store a rating and recompute the rated user's score."""
        self._validate_scores(scores)

        transaction = self.db.query(Transaction).filter(Transaction.id == transaction_id).first()
        if not transaction:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        if transaction.party_role(rater.id) is None:
            raise ForbiddenError("Only parties to the transaction can rate it")
        if user_id != transaction.counterparty_id(rater.id):
            raise ValidationError("Rated user must be the other party to the transaction", field="user_id")
        if transaction.status != TransactionStatus.COMPLETED.value:
            raise ValidationError("Ratings can only be submitted for completed transactions", field="transaction_id")

        existing = (
            self.db.query(RWSMetric)
            .filter(RWSMetric.rater_id == rater.id, RWSMetric.transaction_id == transaction_id)
            .first()
        )
        if existing:
            raise ConflictError("You have already rated this transaction")

        overall = sum(scores[field] for field in SUB_SCORE_FIELDS) / len(SUB_SCORE_FIELDS)
        metric = RWSMetric(
            user_id=user_id,
            rater_id=rater.id,
            transaction_id=transaction_id,
            overall_score=Decimal(str(round_half_up(overall))),
            **{field: scores[field] for field in SUB_SCORE_FIELDS},
        )
        try:
            self.db.add(metric)
            self.db.flush()
            metrics = self.rws.update_user_rws(user_id, trigger="rating")
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("You have already rated this transaction")
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(metric)
        return metric, metrics

    def ratings_for_user(self, user_id: str) -> list[RWSMetric]:
        """Ratings received by a user, newest first."""
        return (
            self.db.query(RWSMetric)
            .filter(RWSMetric.user_id == user_id)
            .order_by(RWSMetric.created_at.desc())
            .all()
        )
