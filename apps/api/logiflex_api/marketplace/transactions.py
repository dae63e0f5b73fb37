"""Transaction lifecycle."""

import logging

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from logiflex_api.errors import ConflictError, ForbiddenError, NotFoundError
from logiflex_api.ettn.service import ETTNService
from logiflex_api.ettn.signer import EDSService
from logiflex_api.marketplace.state_machine import (
    CargoStatus,
    TransactionStatus,
    UserRole,
    can_transition,
    ensure_transaction_transition,
    parse_status,
)
from logiflex_api.models import Cargo, ETTN, Transaction, User
from logiflex_api.notifications.outbox import NotificationOutbox
from logiflex_api.reputation.service import RWSService
from logiflex_api.utils.clock import utcnow
from logiflex_api.utils.metrics import transaction_transitions

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    TransactionStatus.CONFIRMED: "подтверждена",
    TransactionStatus.IN_TRANSIT: "в пути",
    TransactionStatus.DELIVERED: "доставлена",
    TransactionStatus.COMPLETED: "завершена",
    TransactionStatus.DISPUTED: "оспорена",
}


class TransactionService:
    """Move transactions through their table-driven lifecycle."""

    def __init__(self, db: Session, eds: EDSService, outbox: NotificationOutbox = None):
        """Initialize transaction service."""
        self.db = db
        self.outbox = outbox if outbox is not None else NotificationOutbox()
        self.ettn = ETTNService(db, eds, self.outbox)

    def list_for_user(self, user: User) -> list[Transaction]:
        query = self.db.query(Transaction)
        if user.role != UserRole.ADMIN.value:
            query = query.filter(or_(Transaction.shipper_id == user.id, Transaction.carrier_id == user.id))
        return query.order_by(Transaction.created_at.desc()).all()

    def get(self, user: User, transaction_id: str) -> Transaction:
        """Transaction visible to its parties and admins."""
        transaction = self.db.query(Transaction).filter(Transaction.id == transaction_id).first()
        if not transaction:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        if user.role != UserRole.ADMIN.value and transaction.party_role(user.id) is None:
            raise ForbiddenError("You don't have permission to access this transaction")
        return transaction

    def advance_status(self, user: User, transaction_id: str, status: str) -> Transaction:
        """Apply one legal lifecycle step on behalf of a party or admin."""
        target = parse_status(TransactionStatus, status)
        transaction = self.get(user, transaction_id)
        current = TransactionStatus(transaction.status)
        ensure_transaction_transition(
            current,
            target,
            actor_role=transaction.party_role(user.id),
            is_admin=user.role == UserRole.ADMIN.value,
        )

        now = utcnow()
        ettn = None
        try:
            updated = (
                self.db.query(Transaction)
                .filter(Transaction.id == transaction.id, Transaction.status == current.value)
                .update({Transaction.status: target.value, Transaction.updated_at: now}, synchronize_session=False)
            )
            if not updated:
                raise ConflictError("Transaction status changed concurrently, reload and retry")
            self.db.refresh(transaction)

            if target == TransactionStatus.CONFIRMED:
                existing = self.db.query(ETTN.id).filter(ETTN.transaction_id == transaction.id).first()
                if not existing:
                    ettn = self.ettn.build_for_transaction(transaction)
            elif target == TransactionStatus.IN_TRANSIT:
                transaction.pickup_confirmed = True
            elif target == TransactionStatus.DELIVERED:
                transaction.delivery_confirmed = True
            elif target == TransactionStatus.COMPLETED:
                transaction.completed_at = now
                self._complete_cargo(transaction.cargo_id, now)

            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("E-TTN already exists for this transaction")
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(transaction)
        transaction_transitions.labels(from_status=current.value, to_status=target.value).inc()
        logger.info(
            "Transaction status updated",
            extra={
                "transaction_id": transaction.id,
                "from_status": current.value,
                "to_status": target.value,
                "user_id": user.id,
            },
        )

        self._notify_parties(transaction, user, target)
        if ettn is not None:
            self.ettn.notify_created(ettn, user, automatic=True)
        if target == TransactionStatus.COMPLETED:
            RWSService(self.db).recompute_best_effort(
                [transaction.shipper_id, transaction.carrier_id], trigger="transaction_completed"
            )
        return transaction

    def _complete_cargo(self, cargo_id: str, now) -> None:
        cargo = self.db.query(Cargo).filter(Cargo.id == cargo_id).first()
        if cargo and can_transition(CargoStatus(cargo.status), CargoStatus.COMPLETED):
            cargo.status = CargoStatus.COMPLETED.value
            cargo.updated_at = now

    def _notify_parties(self, transaction: Transaction, actor: User, target: TransactionStatus) -> None:
        # Admin moves notify both parties; a party's move notifies the other one
        if transaction.party_role(actor.id) is None:
            recipients = [transaction.shipper_id, transaction.carrier_id]
        else:
            recipients = [transaction.counterparty_id(actor.id)]
        for user_id in recipients:
            self.outbox.publish(
                user_id,
                "status_update",
                "Статус сделки обновлён",
                f"Сделка {STATUS_LABELS.get(target, target.value)}",
                f"/transactions/{transaction.id}",
            )
