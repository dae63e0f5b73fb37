"""E-TTN document and digital signature models."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, JSON, Numeric, String, Text
from sqlalchemy.orm import relationship

from logiflex_api.db.base import Base
from logiflex_api.utils.clock import utcnow


class ETTN(Base):
    """Electronic Transport and Transit Note, one per transaction."""

    __tablename__ = "ettn"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    transaction_id = Column(String(36), ForeignKey("transactions.id"), nullable=False, unique=True, index=True)
    ettn_number = Column(String(64), nullable=False, unique=True, index=True)
    cargo_description = Column(Text, nullable=False)
    origin = Column(String(255), nullable=False)
    destination = Column(String(255), nullable=False)
    weight = Column(Numeric(10, 2), nullable=False)
    shipper_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    carrier_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    shipper_signature = Column(Text, nullable=True)
    carrier_signature = Column(Text, nullable=True)
    shipper_signed_at = Column(DateTime, nullable=True)
    carrier_signed_at = Column(DateTime, nullable=True)
    status = Column(String(20), default="draft", nullable=False)  # draft, pending_signature, partially_signed, fully_signed, completed
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    transaction = relationship("Transaction")
    signatures = relationship("DigitalSignature", back_populates="ettn", order_by="DigitalSignature.signed_at")


class DigitalSignature(Base):
    """Append-only audit record of one party signing an E-TTN."""

    __tablename__ = "digital_signatures"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    ettn_id = Column(String(36), ForeignKey("ettn.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    signature_data = Column(Text, nullable=False)
    certificate_id = Column(String(64), nullable=False)
    certificate_expiry = Column(DateTime, nullable=True)
    signed_at = Column(DateTime, default=utcnow, nullable=False)
    is_valid = Column(Boolean, default=True, nullable=False)  # only flips to False on certificate expiry
    metadata_json = Column("metadata", JSON, nullable=True)  # role, document_hash

    # Relationships
    ettn = relationship("ETTN", back_populates="signatures")
