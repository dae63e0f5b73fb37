"""Chat message and notification models."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text

from logiflex_api.db.base import Base
from logiflex_api.utils.clock import utcnow


class Message(Base):
    """Chat message inside a transaction."""

    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    transaction_id = Column(String(36), ForeignKey("transactions.id"), nullable=False, index=True)
    sender_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)


class Notification(Base):
    """In-app alert."""

    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(50), nullable=False)  # new_bid, bid_accepted, bid_rejected, status_update, new_message, auction_ending
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    link = Column(String(500), nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
