"""EDS (electronic digital signature) abstraction.

Only a mock implementation exists. It hashes instead of signing and its
verification fails about 5% of the time on purpose, which makes it fit for
demonstrations only. A production deployment needs a real PKI integration
behind the same interface.
"""

import asyncio
import base64
import hashlib
import logging
import random
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from logiflex_api.settings import get_settings
from logiflex_api.utils.clock import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EDSCertificate:
    """Signing certificate as issued by the authority."""

    id: str
    owner_name: str
    owner_iin: str
    organization_bin: Optional[str]
    issuer: str
    valid_from: datetime
    valid_until: datetime
    public_key: str


@dataclass(frozen=True)
class SignatureResult:
    """Outcome of signing a document."""

    signature: str
    certificate_id: str
    timestamp: datetime
    document_hash: str
    is_valid: bool = True


class EDSService(ABC):
    """Abstract digital signature authority."""

    @abstractmethod
    def issue_certificate(
        self, owner_name: str, owner_iin: str, organization_bin: Optional[str] = None
    ) -> EDSCertificate:
        """Issue a certificate for a signer."""
        pass

    @abstractmethod
    async def sign_document(self, document_data: str, certificate_id: str) -> SignatureResult:
        """Sign a canonical document payload."""
        pass

    @abstractmethod
    async def verify_signature(self, document_data: str, signature: str, certificate_id: str) -> bool:
        """Verify a previously produced signature."""
        pass

    @staticmethod
    def document_hash(document_data: str) -> str:
        """SHA-256 hex digest of a document payload."""
        return hashlib.sha256(document_data.encode("utf-8")).hexdigest()

    @staticmethod
    def validate_certificate(valid_from: datetime, valid_until: datetime, now: Optional[datetime] = None) -> bool:
        """Check that ``now`` lies within the certificate's validity window."""
        now = now or utcnow()
        return valid_from <= now <= valid_until


class MockEDSService(EDSService):
    """Hash-based stand-in for the national signature authority. NOT for production."""

    def __init__(
        self,
        issuer: Optional[str] = None,
        validity_days: Optional[int] = None,
        sign_latency_ms: Optional[int] = None,
        verify_latency_ms: Optional[int] = None,
        verify_success_rate: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ):
        """Initialize mock signer; unset options fall back to settings."""
        settings = get_settings()
        self.issuer = issuer or settings.eds_issuer
        self.validity_days = validity_days if validity_days is not None else settings.eds_certificate_validity_days
        self.sign_latency_ms = sign_latency_ms if sign_latency_ms is not None else settings.eds_sign_latency_ms
        self.verify_latency_ms = verify_latency_ms if verify_latency_ms is not None else settings.eds_verify_latency_ms
        self.verify_success_rate = (
            verify_success_rate if verify_success_rate is not None else settings.eds_verify_success_rate
        )
        self._rng = rng or random.Random()

    def issue_certificate(
        self, owner_name: str, owner_iin: str, organization_bin: Optional[str] = None
    ) -> EDSCertificate:
        """Issue a certificate valid from now for ``validity_days``."""
        valid_from = utcnow()
        certificate = EDSCertificate(
            id=f"CERT-{secrets.token_hex(8).upper()}",
            owner_name=owner_name,
            owner_iin=owner_iin,
            organization_bin=organization_bin,
            issuer=self.issuer,
            valid_from=valid_from,
            valid_until=valid_from + timedelta(days=self.validity_days),
            public_key=secrets.token_hex(32),
        )
        logger.info(
            "Mock EDS certificate issued",
            extra={"certificate_id": certificate.id, "valid_until": certificate.valid_until.isoformat()},
        )
        return certificate

    async def sign_document(self, document_data: str, certificate_id: str) -> SignatureResult:
        """Hash the payload, bind it to the certificate and a timestamp."""
        await asyncio.sleep(self.sign_latency_ms / 1000)

        timestamp = utcnow()
        document_hash = self.document_hash(document_data)
        millis = int(timestamp.replace(tzinfo=timezone.utc).timestamp() * 1000)
        seed = f"{document_hash}-{certificate_id}-{millis}"
        signature = base64.b64encode(hashlib.sha512(seed.encode("utf-8")).digest()).decode()

        return SignatureResult(
            signature=signature,
            certificate_id=certificate_id,
            timestamp=timestamp,
            document_hash=document_hash,
        )

    async def verify_signature(self, document_data: str, signature: str, certificate_id: str) -> bool:
        """Simulated verification; randomly fails at ``1 - verify_success_rate``."""
        await asyncio.sleep(self.verify_latency_ms / 1000)

        if not signature or not certificate_id:
            return False
        return self._rng.random() < self.verify_success_rate


_eds_service: Optional[EDSService] = None


def get_eds_service() -> EDSService:
    """Get the process-wide signature service (FastAPI dependency)."""
    global _eds_service
    if _eds_service is None:
        _eds_service = MockEDSService()
        logger.warning("Using MockEDSService: signatures are NOT cryptographically valid")
    return _eds_service
