"""Transaction and peer rating models."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from logiflex_api.db.base import Base
from logiflex_api.utils.clock import utcnow


class Transaction(Base):
    """Contract created when a bid is accepted."""

    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    cargo_id = Column(String(36), ForeignKey("cargo.id"), nullable=False, index=True)
    bid_id = Column(String(36), ForeignKey("bids.id"), nullable=False, unique=True)
    shipper_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    carrier_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(20), default="created", nullable=False, index=True)  # created, confirmed, in_transit, delivered, completed, disputed
    pickup_confirmed = Column(Boolean, default=False, nullable=False)
    delivery_confirmed = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)  # set once, on entering completed

    # Relationships
    cargo = relationship("Cargo")
    bid = relationship("Bid")
    shipper = relationship("User", foreign_keys=[shipper_id])
    carrier = relationship("User", foreign_keys=[carrier_id])

    def party_role(self, user_id: str):
        """Return "shipper", "carrier" or None for a user."""
        if user_id == self.shipper_id:
            return "shipper"
        if user_id == self.carrier_id:
            return "carrier"
        return None

    def counterparty_id(self, user_id: str) -> str:
        """Return the other party's id (the shipper for outsiders)."""
        return self.carrier_id if user_id == self.shipper_id else self.shipper_id


class RWSMetric(Base):
    """Peer rating, immutable once created."""

    __tablename__ = "rws_metrics"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)  # rated user
    rater_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    transaction_id = Column(String(36), ForeignKey("transactions.id"), nullable=False, index=True)
    on_time_delivery = Column(Integer, nullable=False)
    cargo_condition = Column(Integer, nullable=False)
    communication = Column(Integer, nullable=False)
    documentation = Column(Integer, nullable=False)
    overall_score = Column(Numeric(3, 2), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("rater_id", "transaction_id", name="uq_rws_rater_transaction"),
    )

    # Relationships
    transaction = relationship("Transaction")
