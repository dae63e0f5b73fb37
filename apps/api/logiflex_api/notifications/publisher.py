"""Notification delivery backends.

``deliver`` never raises: the marketplace core does not wait on, or depend
on, notification delivery.
"""

import logging
from abc import ABC, abstractmethod

from fastapi import BackgroundTasks, Depends
from sqlalchemy.orm import sessionmaker

from logiflex_api.models import Notification
from logiflex_api.notifications.outbox import NotificationOutbox
from logiflex_api.settings import get_settings
from logiflex_api.utils.metrics import notifications_published

logger = logging.getLogger(__name__)

DELIVER_NOTIFICATION_TASK = "logiflex_worker.tasks.deliver_notification"


class NotificationPublisher(ABC):
    """Abstract notification publisher."""

    backend = "abstract"

    def deliver(self, user_id: str, payload: dict) -> bool:
        """Deliver a notification; returns False instead of raising."""
        try:
            self._deliver(user_id, payload)
        except Exception as e:
            notifications_published.labels(backend=self.backend, status="failed").inc()
            logger.warning(
                f"Failed to deliver notification: {e}",
                exc_info=True,
                extra={"user_id": user_id, "type": payload.get("type")},
            )
            return False
        notifications_published.labels(backend=self.backend, status="delivered").inc()
        return True

    @abstractmethod
    def _deliver(self, user_id: str, payload: dict) -> None:
        """Backend-specific delivery."""
        pass


class DatabaseNotificationPublisher(NotificationPublisher):
    """Write notification rows in a session of their own."""

    backend = "database"

    def __init__(self, session_factory: sessionmaker):
        """Initialize with a session factory, not the request session."""
        self.session_factory = session_factory

    def _deliver(self, user_id: str, payload: dict) -> None:
        db = self.session_factory()
        try:
            db.add(
                Notification(
                    user_id=user_id,
                    type=payload["type"],
                    title=payload["title"],
                    message=payload["message"],
                    link=payload.get("link"),
                )
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class CeleryNotificationPublisher(NotificationPublisher):
    """Enqueue delivery to the worker."""

    backend = "celery"

    def __init__(self, celery_app=None):
        """Initialize with an optional Celery app (defaults to the shared client)."""
        self._celery_app = celery_app

    @property
    def celery_app(self):
        if self._celery_app is None:
            from logiflex_api.celery_client import get_celery_app

            self._celery_app = get_celery_app()
        return self._celery_app

    def _deliver(self, user_id: str, payload: dict) -> None:
        self.celery_app.send_task(DELIVER_NOTIFICATION_TASK, args=[user_id, payload])


def get_publisher() -> NotificationPublisher:
    """FastAPI dependency returning the configured publisher."""
    settings = get_settings()
    if settings.notification_backend == "celery":
        return CeleryNotificationPublisher()

    from logiflex_api.db.session import SessionLocal

    return DatabaseNotificationPublisher(SessionLocal)


def get_outbox(
    background_tasks: BackgroundTasks,
    publisher: NotificationPublisher = Depends(get_publisher),
) -> NotificationOutbox:
    """FastAPI dependency: a per-request outbox drained after the response."""
    outbox = NotificationOutbox()
    background_tasks.add_task(outbox.flush, publisher)
    return outbox
