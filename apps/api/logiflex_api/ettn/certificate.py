"""Signing certificate management."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from logiflex_api.ettn.signer import EDSService
from logiflex_api.models import SigningCertificate, User
from logiflex_api.utils.clock import utcnow

logger = logging.getLogger(__name__)


class CertificateService:
    """Issue-once-per-user certificate store.

    ``ensure_certificate`` is idempotent: it returns the user's current
    certificate while it is valid and only asks the authority for a new one
    when none exists or the cached one has expired.
    """

    def __init__(self, db: Session, eds: EDSService):
        """Initialize certificate service."""
        self.db = db
        self.eds = eds

    def current_certificate(self, user: User) -> Optional[SigningCertificate]:
        """Return the user's cached certificate if it is still valid."""
        if not user.eds_cert_id:
            return None
        certificate = (
            self.db.query(SigningCertificate)
            .filter(SigningCertificate.certificate_id == user.eds_cert_id)
            .first()
        )
        if certificate and self.eds.validate_certificate(certificate.valid_from, certificate.valid_until, utcnow()):
            return certificate
        return None

    def ensure_certificate(self, user: User) -> SigningCertificate:
        """Return a valid certificate for the user, issuing one if needed."""
        certificate = self.current_certificate(user)
        if certificate:
            return certificate

        owner_name = " ".join(part for part in (user.first_name, user.last_name) if part) or user.display_name
        issued = self.eds.issue_certificate(owner_name, user.iin or "", user.bin or None)
        certificate = SigningCertificate(
            certificate_id=issued.id,
            user_id=user.id,
            owner_name=issued.owner_name,
            owner_iin=issued.owner_iin,
            organization_bin=issued.organization_bin,
            issuer=issued.issuer,
            valid_from=issued.valid_from,
            valid_until=issued.valid_until,
            public_key=issued.public_key,
        )
        self.db.add(certificate)
        user.eds_cert_id = issued.id
        user.eds_cert_expiry = issued.valid_until
        self.db.flush()

        logger.info(
            "Signing certificate cached for user",
            extra={"user_id": user.id, "certificate_id": issued.id},
        )
        return certificate
