"""Tests for E-TTN creation and co-signing."""

import asyncio
import json
import re
from datetime import timedelta

import pytest

from logiflex_api.errors import ConflictError, ForbiddenError, NotFoundError
from logiflex_api.ettn.service import ETTNService, canonical_document, generate_ettn_number
from logiflex_api.ettn.signer import MockEDSService
from logiflex_api.marketplace.transactions import TransactionService
from logiflex_api.models import ETTN, DigitalSignature, SigningCertificate
from logiflex_api.notifications.outbox import NotificationOutbox
from logiflex_api.utils.clock import utcnow


@pytest.fixture
def service(db, eds, outbox):
    return ETTNService(db, eds, outbox)


@pytest.fixture
def ettn(service, transaction, shipper):
    return service.create(transaction.id, shipper)


def sign(service, ettn_id, user):
    return asyncio.run(service.sign(ettn_id, user))


def test_ettn_number_format():
    assert re.fullmatch(r"ETTN-\d{13}-[A-Z0-9]{9}", generate_ettn_number())


class TestCreate:
    """One document per transaction."""

    def test_create_copies_cargo_and_parties(self, ettn, cargo, shipper, carrier, outbox):
        assert ettn.status == "pending_signature"
        assert ettn.cargo_description == cargo.description
        assert ettn.origin == "Алматы"
        assert ettn.destination == "Астана"
        assert float(ettn.weight) == 1500.0
        assert ettn.shipper_id == shipper.id
        assert ettn.carrier_id == carrier.id
        assert [(n.user_id, n.type) for n in outbox.pending] == [(carrier.id, "status_update")]

    def test_description_falls_back_to_title(self, db, service, make_cargo, make_bid, shipper, carrier):
        from logiflex_api.marketplace.bids import BidService

        untitled = make_cargo(shipper, description=None, title="Мебель")
        _, transaction = BidService(db).decide(shipper, make_bid(untitled, carrier).id, "accepted")
        assert service.create(transaction.id, carrier).cargo_description == "Мебель"

    def test_second_create_conflicts(self, service, ettn, transaction, carrier):
        with pytest.raises(ConflictError):
            service.create(transaction.id, carrier)

    def test_outsider_cannot_create(self, service, transaction, make_user):
        outsider, _ = make_user("carrier")
        with pytest.raises(ForbiddenError):
            service.create(transaction.id, outsider)

    def test_missing_transaction(self, service, shipper):
        with pytest.raises(NotFoundError):
            service.create("missing", shipper)


class TestSign:
    """Independent, commutative signature slots."""

    def test_first_signature_is_partial(self, db, service, ettn, shipper):
        signed = sign(service, ettn.id, shipper)

        assert signed.status == "partially_signed"
        assert signed.shipper_signature
        assert signed.shipper_signed_at is not None
        assert signed.carrier_signature is None

        record = db.query(DigitalSignature).filter(DigitalSignature.ettn_id == ettn.id).one()
        assert record.user_id == shipper.id
        assert record.metadata_json["role"] == "shipper"
        assert record.metadata_json["document_hash"] == MockEDSService.document_hash(canonical_document(signed))
        assert record.is_valid is True

    @pytest.mark.parametrize("order", [("shipper", "carrier"), ("carrier", "shipper")])
    def test_both_signatures_in_any_order(self, service, ettn, shipper, carrier, order):
        users = {"shipper": shipper, "carrier": carrier}
        sign(service, ettn.id, users[order[0]])
        signed = sign(service, ettn.id, users[order[1]])
        assert signed.status == "fully_signed"
        assert signed.shipper_signature and signed.carrier_signature

    def test_signing_twice_conflicts(self, db, service, ettn, shipper):
        sign(service, ettn.id, shipper)
        with pytest.raises(ConflictError):
            sign(service, ettn.id, shipper)
        assert db.query(DigitalSignature).filter(DigitalSignature.ettn_id == ettn.id).count() == 1

    def test_outsider_cannot_sign(self, service, ettn, make_user):
        outsider, _ = make_user("carrier")
        with pytest.raises(ForbiddenError):
            sign(service, ettn.id, outsider)

    def test_missing_ettn(self, service, shipper):
        with pytest.raises(NotFoundError):
            sign(service, "missing", shipper)

    def test_full_signing_notifies_coparty(self, service, outbox, ettn, shipper, carrier):
        sign(service, ettn.id, shipper)
        sign(service, ettn.id, carrier)
        assert (shipper.id, "status_update") in [(n.user_id, n.type) for n in outbox.pending]

    def test_full_signing_starts_transit_of_confirmed_transaction(
        self, db, eds, service, transaction, shipper, carrier
    ):
        TransactionService(db, eds, NotificationOutbox()).advance_status(shipper, transaction.id, "confirmed")
        ettn = db.query(ETTN).filter(ETTN.transaction_id == transaction.id).one()

        sign(service, ettn.id, carrier)
        sign(service, ettn.id, shipper)

        db.refresh(transaction)
        assert transaction.status == "in_transit"
        assert transaction.pickup_confirmed is True

    def test_full_signing_leaves_unconfirmed_transaction_alone(self, db, service, ettn, transaction, shipper, carrier):
        sign(service, ettn.id, shipper)
        sign(service, ettn.id, carrier)
        db.refresh(transaction)
        assert transaction.status == "created"

    def test_concurrent_signature_loses_with_conflict(self, db, eds, ettn, shipper):
        class RacingEDS(MockEDSService):
            """Another request fills the slot while this one is signing."""

            async def sign_document(self, document_data, certificate_id):
                db.query(ETTN).filter(ETTN.id == ettn.id).update(
                    {ETTN.shipper_signature: "signed-elsewhere"}, synchronize_session=False
                )
                return await super().sign_document(document_data, certificate_id)

        racing = RacingEDS(sign_latency_ms=0, verify_latency_ms=0)
        with pytest.raises(ConflictError):
            sign(ETTNService(db, racing), ettn.id, shipper)
        assert db.query(DigitalSignature).count() == 0


class TestCertificates:
    """Ensure-certificate step."""

    def test_certificate_issued_once_and_reused(self, db, service, transaction, ettn, shipper, make_cargo, make_bid, carrier):
        from logiflex_api.marketplace.bids import BidService

        sign(service, ettn.id, shipper)
        db.refresh(shipper)
        first_cert = shipper.eds_cert_id
        assert first_cert.startswith("CERT-")
        assert shipper.eds_cert_expiry > utcnow() + timedelta(days=364)

        second_cargo = make_cargo(shipper)
        _, second_tx = BidService(db).decide(shipper, make_bid(second_cargo, carrier).id, "accepted")
        second_ettn = service.create(second_tx.id, shipper)
        sign(service, second_ettn.id, shipper)

        db.refresh(shipper)
        assert shipper.eds_cert_id == first_cert
        assert db.query(SigningCertificate).filter(SigningCertificate.user_id == shipper.id).count() == 1

    def test_expired_certificate_is_reissued(self, db, service, ettn, shipper):
        from logiflex_api.ettn.certificate import CertificateService

        certificates = CertificateService(db, service.eds)
        old = certificates.ensure_certificate(shipper)
        old.valid_until = utcnow() - timedelta(days=1)
        db.commit()

        new = certificates.ensure_certificate(shipper)
        assert new.certificate_id != old.certificate_id
        assert shipper.eds_cert_id == new.certificate_id


class TestSignatureAudit:
    """Validation and mock verification."""

    def test_expired_certificate_invalidates_signature(self, db, service, ettn, shipper):
        sign(service, ettn.id, shipper)
        record = db.query(DigitalSignature).one()
        record.certificate_expiry = utcnow() - timedelta(minutes=1)
        db.commit()

        assert service.validate_signature(record.id, shipper).is_valid is False

    def test_valid_signature_stays_valid(self, db, service, ettn, shipper):
        sign(service, ettn.id, shipper)
        record = db.query(DigitalSignature).one()
        assert service.validate_signature(record.id, shipper).is_valid is True

    def test_verification_is_labelled_mock(self, db, service, ettn, shipper):
        sign(service, ettn.id, shipper)
        record = db.query(DigitalSignature).one()

        result = asyncio.run(service.verify_signature(record.id, shipper))
        assert result["verified"] is True
        assert result["mock"] is True
        assert "mock" in result["notice"].lower()

    def test_simulated_verification_failure(self, db, ettn, shipper, service):
        sign(service, ettn.id, shipper)
        record = db.query(DigitalSignature).one()
        failing = MockEDSService(sign_latency_ms=0, verify_latency_ms=0, verify_success_rate=0.0)

        result = asyncio.run(ETTNService(db, failing).verify_signature(record.id, shipper))
        assert result["verified"] is False

    def test_outsider_cannot_read_signatures(self, service, ettn, make_user):
        outsider, _ = make_user("shipper")
        with pytest.raises(ForbiddenError):
            service.list_signatures(ettn.id, outsider)


def test_canonical_document_is_sorted_and_stable(ettn):
    document = canonical_document(ettn)
    parsed = json.loads(document)
    assert list(parsed) == sorted(parsed)
    assert parsed["route"] == "Алматы -> Астана"
    assert parsed["weight"] == "1500.00"
    assert canonical_document(ettn) == document
