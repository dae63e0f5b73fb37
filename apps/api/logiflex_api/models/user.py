"""User and signing certificate models."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from logiflex_api.db.base import Base
from logiflex_api.utils.clock import utcnow


class User(Base):
    """Marketplace participant.

    The reputation columns are a materialized view over transactions, bids
    and ratings. They are only ever written by a full RWS recompute.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), nullable=True, unique=True, index=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    role = Column(String(20), default="shipper", nullable=False)  # shipper, carrier, admin
    company_name = Column(String(255), nullable=True)
    phone = Column(String(20), nullable=True)
    bin = Column(String(12), nullable=True)  # business identification number
    iin = Column(String(12), nullable=True)  # individual identification number
    is_verified = Column(Boolean, default=False, nullable=False)

    # API key lookup (prefix is indexed, digest compared in constant time)
    api_key_prefix = Column(String(16), nullable=True, index=True)
    api_key_digest = Column(String(255), nullable=True)

    # EDS certificate cache
    eds_cert_id = Column(String(64), nullable=True)
    eds_cert_expiry = Column(DateTime, nullable=True)

    # Reputation (RWS)
    rws_score = Column(Integer, default=0, nullable=False)
    otd_rate = Column(Numeric(5, 2), default=0, nullable=False)
    acceptance_rate = Column(Numeric(5, 2), default=0, nullable=False)
    reliability_score = Column(Numeric(5, 2), default=0, nullable=False)
    total_transactions = Column(Integer, default=0, nullable=False)
    on_time_deliveries = Column(Integer, default=0, nullable=False)
    late_deliveries = Column(Integer, default=0, nullable=False)
    total_bids = Column(Integer, default=0, nullable=False)
    accepted_bids = Column(Integer, default=0, nullable=False)
    is_recommended = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    certificates = relationship("SigningCertificate", back_populates="user")

    @property
    def display_name(self) -> str:
        """Company name, full name or email, whichever is set first."""
        full_name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return self.company_name or full_name or self.email or self.id


class SigningCertificate(Base):
    """Mock EDS certificate issued to a user."""

    __tablename__ = "signing_certificates"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    certificate_id = Column(String(64), nullable=False, unique=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    owner_name = Column(String(255), nullable=False)
    owner_iin = Column(String(12), nullable=False, default="")
    organization_bin = Column(String(12), nullable=True)
    issuer = Column(String(255), nullable=False)
    valid_from = Column(DateTime, nullable=False)
    valid_until = Column(DateTime, nullable=False)
    public_key = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="certificates")
