"""Cargo listing and bid models."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import relationship

from logiflex_api.db.base import Base
from logiflex_api.utils.clock import utcnow


class Cargo(Base):
    """Shipment listing owned by a shipper."""

    __tablename__ = "cargo"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=False)
    origin = Column(String(255), nullable=False)
    destination = Column(String(255), nullable=False)
    weight = Column(Numeric(10, 2), nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    pickup_date = Column(DateTime, nullable=False)
    delivery_date = Column(DateTime, nullable=True)  # declared delivery date used for OTD
    auction_end_date = Column(DateTime, nullable=True)
    status = Column(String(20), default="active", nullable=False, index=True)  # active, in_progress, completed, cancelled
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    owner = relationship("User")
    bids = relationship("Bid", back_populates="cargo")


class Bid(Base):
    """Carrier offer against one cargo."""

    __tablename__ = "bids"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    cargo_id = Column(String(36), ForeignKey("cargo.id"), nullable=False, index=True)
    carrier_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    bid_amount = Column(Numeric(12, 2), nullable=False)
    delivery_time = Column(String(100), nullable=False)
    vehicle_type = Column(String(100), nullable=False)
    message = Column(Text, nullable=True)
    status = Column(String(20), default="pending", nullable=False, index=True)  # pending, accepted, rejected
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    cargo = relationship("Cargo", back_populates="bids")
    carrier = relationship("User")
