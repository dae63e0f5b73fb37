"""E-TTN lifecycle: creation, co-signing, signature audit."""

import json
import logging
import secrets
import string
import time
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from logiflex_api.errors import ConflictError, ForbiddenError, NotFoundError
from logiflex_api.ettn.certificate import CertificateService
from logiflex_api.ettn.signer import EDSService
from logiflex_api.marketplace.state_machine import (
    ETTNStatus,
    TransactionStatus,
    UserRole,
    can_transition,
    ensure_transition,
)
from logiflex_api.models import Cargo, DigitalSignature, ETTN, Transaction, User
from logiflex_api.notifications.outbox import NotificationOutbox
from logiflex_api.utils.clock import utcnow
from logiflex_api.utils.metrics import ettn_signatures, transaction_transitions

logger = logging.getLogger(__name__)

_NUMBER_ALPHABET = string.ascii_uppercase + string.digits

MOCK_VERIFICATION_NOTICE = (
    "Verified by the mock EDS service: ~5% of checks fail at random. Not a production verification."
)


def generate_ettn_number() -> str:
    """Human-readable document number, e.g. ETTN-1736500000000-7QK2M9XZA."""
    suffix = "".join(secrets.choice(_NUMBER_ALPHABET) for _ in range(9))
    return f"ETTN-{int(time.time() * 1000)}-{suffix}"


def canonical_document(ettn: ETTN) -> str:
    """Deterministic payload that both parties sign."""
    return json.dumps(
        {
            "ettn_number": ettn.ettn_number,
            "transaction_id": ettn.transaction_id,
            "cargo": ettn.cargo_description,
            "route": f"{ettn.origin} -> {ettn.destination}",
            "weight": format(Decimal(str(ettn.weight)), ".2f"),
        },
        sort_keys=True,
        ensure_ascii=False,
    )


def signer_role(ettn: ETTN, user_id: str) -> Optional[str]:
    """Slot a user signs in, or None if they are not a party."""
    if user_id == ettn.shipper_id:
        return UserRole.SHIPPER.value
    if user_id == ettn.carrier_id:
        return UserRole.CARRIER.value
    return None


def derive_status(ettn: ETTN) -> ETTNStatus:
    """Status implied by the signature slots; order of signing is irrelevant."""
    signed = [bool(ettn.shipper_signature), bool(ettn.carrier_signature)]
    if all(signed):
        return ETTNStatus.FULLY_SIGNED
    if any(signed):
        return ETTNStatus.PARTIALLY_SIGNED
    return ETTNStatus.PENDING_SIGNATURE


class ETTNService:
    """Create and co-sign E-TTN documents, one per transaction."""

    def __init__(self, db: Session, eds: EDSService, outbox: NotificationOutbox = None):
        """Initialize E-TTN service."""
        self.db = db
        self.eds = eds
        self.outbox = outbox if outbox is not None else NotificationOutbox()
        self.certificates = CertificateService(db, eds)

    # Reads

    def _load(self, ettn_id: str) -> ETTN:
        ettn = self.db.query(ETTN).filter(ETTN.id == ettn_id).first()
        if not ettn:
            raise NotFoundError(f"E-TTN {ettn_id} not found")
        return ettn

    @staticmethod
    def _ensure_can_view(ettn: ETTN, user: User) -> None:
        if user.role != UserRole.ADMIN.value and signer_role(ettn, user.id) is None:
            raise ForbiddenError("Not authorized to view this E-TTN")

    def get(self, ettn_id: str, user: User) -> ETTN:
        """E-TTN by id, visible to its parties and admins."""
        ettn = self._load(ettn_id)
        self._ensure_can_view(ettn, user)
        return ettn

    def get_by_transaction(self, transaction_id: str, user: User) -> ETTN:
        """E-TTN of a transaction, visible to its parties and admins."""
        transaction = self.db.query(Transaction).filter(Transaction.id == transaction_id).first()
        if not transaction:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        if user.role != UserRole.ADMIN.value and transaction.party_role(user.id) is None:
            raise ForbiddenError("Not authorized to view E-TTN for this transaction")
        ettn = self.db.query(ETTN).filter(ETTN.transaction_id == transaction_id).first()
        if not ettn:
            raise NotFoundError(f"E-TTN not found for transaction {transaction_id}")
        return ettn

    def list_signatures(self, ettn_id: str, user: User) -> list[DigitalSignature]:
        """Signature audit trail, oldest first."""
        ettn = self.get(ettn_id, user)
        return (
            self.db.query(DigitalSignature)
            .filter(DigitalSignature.ettn_id == ettn.id)
            .order_by(DigitalSignature.signed_at.asc())
            .all()
        )

    # Creation

    def build_for_transaction(self, transaction: Transaction) -> ETTN:
        """Add an E-TTN for the transaction to the session without committing.

        Used both by ``create`` and by the transaction confirmation step,
        which must write the document in the same unit of work.
        """
        existing = self.db.query(ETTN).filter(ETTN.transaction_id == transaction.id).first()
        if existing:
            raise ConflictError("E-TTN already exists for this transaction")

        cargo = self.db.query(Cargo).filter(Cargo.id == transaction.cargo_id).first()
        if not cargo:
            raise NotFoundError(f"Cargo {transaction.cargo_id} not found")

        ettn = ETTN(
            transaction_id=transaction.id,
            ettn_number=generate_ettn_number(),
            cargo_description=cargo.description or cargo.title,
            origin=cargo.origin,
            destination=cargo.destination,
            weight=cargo.weight,
            shipper_id=transaction.shipper_id,
            carrier_id=transaction.carrier_id,
            status=ETTNStatus.DRAFT.value,
        )
        ensure_transition(ETTNStatus.DRAFT, ETTNStatus.PENDING_SIGNATURE, entity="E-TTN")
        ettn.status = ETTNStatus.PENDING_SIGNATURE.value
        self.db.add(ettn)
        self.db.flush()
        return ettn

    def notify_created(self, ettn: ETTN, actor: User, automatic: bool = False) -> None:
        """Tell the parties other than the actor about a new E-TTN."""
        prefix = "Автоматически создана" if automatic else "Создана"
        for user_id in {ettn.shipper_id, ettn.carrier_id} - {actor.id}:
            self.outbox.publish(
                user_id,
                "status_update",
                "Создана е-ТТН",
                f"{prefix} электронная товарно-транспортная накладная {ettn.ettn_number}",
                f"/transactions/{ettn.transaction_id}",
            )

    def create(self, transaction_id: str, user: User) -> ETTN:
        """Create the E-TTN for a transaction on behalf of a party."""
        transaction = self.db.query(Transaction).filter(Transaction.id == transaction_id).first()
        if not transaction:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        if user.role != UserRole.ADMIN.value and transaction.party_role(user.id) is None:
            raise ForbiddenError("Not authorized to create E-TTN for this transaction")

        try:
            ettn = self.build_for_transaction(transaction)
            self.db.commit()
        except IntegrityError:
            # Lost a race against another creator; the unique index caught it
            self.db.rollback()
            raise ConflictError("E-TTN already exists for this transaction")
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(ettn)
        logger.info(
            "E-TTN created",
            extra={"ettn_id": ettn.id, "ettn_number": ettn.ettn_number, "transaction_id": transaction.id},
        )
        self.notify_created(ettn, user)
        return ettn

    # Signing

    async def sign(self, ettn_id: str, user: User) -> ETTN:
        """Apply the caller's signature to their own slot."""
        ettn = self._load(ettn_id)
        role = signer_role(ettn, user.id)
        if role is None:
            raise ForbiddenError("Not authorized to sign this E-TTN")

        signature_column = getattr(ETTN, f"{role}_signature")
        signed_at_column = getattr(ETTN, f"{role}_signed_at")
        if getattr(ettn, f"{role}_signature"):
            raise ConflictError(f"{role.capitalize()} has already signed this E-TTN")

        try:
            certificate = self.certificates.ensure_certificate(user)
            document = canonical_document(ettn)
            result = await self.eds.sign_document(document, certificate.certificate_id)

            # Conditional write: a concurrent signature for the same slot loses here
            now = utcnow()
            updated = (
                self.db.query(ETTN)
                .filter(ETTN.id == ettn.id, signature_column.is_(None))
                .update(
                    {signature_column: result.signature, signed_at_column: now, ETTN.updated_at: now},
                    synchronize_session=False,
                )
            )
            if updated == 0:
                raise ConflictError(f"{role.capitalize()} has already signed this E-TTN")
            self.db.refresh(ettn)

            self.db.add(
                DigitalSignature(
                    ettn_id=ettn.id,
                    user_id=user.id,
                    signature_data=result.signature,
                    certificate_id=certificate.certificate_id,
                    certificate_expiry=certificate.valid_until,
                    signed_at=now,
                    is_valid=result.is_valid,
                    metadata_json={"role": role, "document_hash": result.document_hash},
                )
            )

            current = ETTNStatus(ettn.status)
            target = derive_status(ettn)
            if target != current:
                ensure_transition(current, target, entity="E-TTN")
                ettn.status = target.value

            transaction = None
            if target == ETTNStatus.FULLY_SIGNED:
                transaction = self._start_transit(ettn.transaction_id)

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(ettn)
        ettn_signatures.labels(role=role).inc()
        logger.info(
            "E-TTN signed",
            extra={"ettn_id": ettn.id, "role": role, "status": ettn.status, "user_id": user.id},
        )

        if ettn.status == ETTNStatus.FULLY_SIGNED.value:
            counterparty = ettn.carrier_id if role == UserRole.SHIPPER.value else ettn.shipper_id
            in_transit = transaction is not None and transaction.status == TransactionStatus.IN_TRANSIT.value
            self.outbox.publish(
                counterparty,
                "status_update",
                "е-ТТН полностью подписана",
                f"Электронная товарно-транспортная накладная {ettn.ettn_number} подписана обеими сторонами"
                + (" и груз в пути" if in_transit else ""),
                f"/transactions/{ettn.transaction_id}",
            )
        return ettn

    def _start_transit(self, transaction_id: str) -> Optional[Transaction]:
        """Move the owning transaction into in_transit when that is a legal step."""
        transaction = self.db.query(Transaction).filter(Transaction.id == transaction_id).first()
        if not transaction:
            return None
        current = TransactionStatus(transaction.status)
        if not can_transition(current, TransactionStatus.IN_TRANSIT):
            logger.info(
                "E-TTN fully signed but transaction cannot enter in_transit",
                extra={"transaction_id": transaction_id, "status": transaction.status},
            )
            return transaction
        transaction.status = TransactionStatus.IN_TRANSIT.value
        transaction.pickup_confirmed = True
        transaction.updated_at = utcnow()
        transaction_transitions.labels(from_status=current.value, to_status=TransactionStatus.IN_TRANSIT.value).inc()
        return transaction

    # Signature audit

    def _load_signature(self, signature_id: str, user: User) -> DigitalSignature:
        signature = self.db.query(DigitalSignature).filter(DigitalSignature.id == signature_id).first()
        if not signature:
            raise NotFoundError(f"Signature {signature_id} not found")
        self._ensure_can_view(self._load(signature.ettn_id), user)
        return signature

    def validate_signature(self, signature_id: str, user: User) -> DigitalSignature:
        """Invalidate a signature whose certificate has expired."""
        signature = self._load_signature(signature_id, user)
        if signature.is_valid and signature.certificate_expiry and signature.certificate_expiry < utcnow():
            signature.is_valid = False
            self.db.commit()
            self.db.refresh(signature)
            logger.warning(
                "Signature invalidated: certificate expired",
                extra={"signature_id": signature.id, "certificate_id": signature.certificate_id},
            )
        return signature

    async def verify_signature(self, signature_id: str, user: User) -> dict:
        """Ask the signature service to verify a stored signature."""
        signature = self.validate_signature(signature_id, user)
        ettn = self._load(signature.ettn_id)
        verified = await self.eds.verify_signature(
            canonical_document(ettn), signature.signature_data, signature.certificate_id
        )
        return {
            "signature_id": signature.id,
            "verified": bool(verified and signature.is_valid),
            "certificate_valid": signature.is_valid,
            "mock": True,
            "notice": MOCK_VERIFICATION_NOTICE,
        }
