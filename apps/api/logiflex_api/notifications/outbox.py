"""Per-request notification outbox.

Services append to the outbox only after their core write has committed.
The route hands ``outbox.flush`` to FastAPI background tasks, so delivery
runs after the response and never affects it.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutboundNotification:
    """Payload of ``deliver(user_id, {type, title, message, link})``."""

    user_id: str
    type: str
    title: str
    message: str
    link: Optional[str] = None

    def payload(self) -> dict:
        """Delivery payload without the recipient."""
        data = asdict(self)
        data.pop("user_id")
        return data


class NotificationOutbox:
    """Collects notifications until the request's writes are durable."""

    def __init__(self):
        """Initialize empty outbox."""
        self._pending: list[OutboundNotification] = []

    def publish(self, user_id: str, type: str, title: str, message: str, link: Optional[str] = None) -> None:
        """Queue a notification for delivery."""
        self._pending.append(
            OutboundNotification(user_id=user_id, type=type, title=title, message=message, link=link)
        )

    @property
    def pending(self) -> list[OutboundNotification]:
        """Notifications not yet flushed."""
        return list(self._pending)

    def __len__(self) -> int:
        return len(self._pending)

    def flush(self, publisher) -> int:
        """Hand every pending notification to the publisher.

        Returns the number delivered. Failures are logged per notification.
        """
        pending, self._pending = self._pending, []
        delivered = 0
        for notification in pending:
            if publisher.deliver(notification.user_id, notification.payload()):
                delivered += 1
        if pending:
            logger.debug(f"Flushed {delivered}/{len(pending)} notifications")
        return delivered
