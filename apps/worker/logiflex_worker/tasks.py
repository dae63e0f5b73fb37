"""Celery tasks for async operations."""

import logging
from typing import Optional

from celery import Task
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from logiflex_worker.celery_app import celery_app
from logiflex_worker.db import get_db

logger = logging.getLogger(__name__)


class DatabaseTask(Task):
    """Task with database session."""

    _db: Optional[Session] = None

    @property
    def db(self) -> Session:
        """Get database session."""
        if self._db is None:
            self._db = next(get_db())
        return self._db

    def after_return(self, *args, **kwargs):
        """Close database session after task."""
        if self._db:
            self._db.close()
            self._db = None


@celery_app.task(
    base=DatabaseTask,
    bind=True,
    max_retries=3,
    autoretry_for=(SQLAlchemyError,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_jitter=True,
)
def deliver_notification(self, user_id: str, payload: dict, correlation_id: Optional[str] = None):
    """Persist an in-app notification for a user."""
    from logiflex_api.models import Notification, User

    db = self.db
    log_extra = {
        "task": "deliver_notification",
        "user_id": user_id,
        "type": payload.get("type"),
        "correlation_id": correlation_id,
    }

    try:
        if not db.query(User.id).filter(User.id == user_id).first():
            logger.error(f"User {user_id} not found, dropping notification", extra=log_extra)
            return None

        notification = Notification(
            user_id=user_id,
            type=payload["type"],
            title=payload["title"],
            message=payload["message"],
            link=payload.get("link"),
        )
        db.add(notification)
        db.commit()
        logger.info("Notification delivered", extra=log_extra)
        return notification.id
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error delivering notification: {e}", exc_info=True, extra=log_extra)
        raise


@celery_app.task(base=DatabaseTask, bind=True, max_retries=2, autoretry_for=(SQLAlchemyError,), retry_backoff=True)
def recompute_rws(self, user_id: Optional[str] = None, trigger: str = "worker"):
    """Recompute one user's reputation, or everyone's when no user is given."""
    from logiflex_api.errors import NotFoundError
    from logiflex_api.reputation.service import RWSService

    db = self.db
    service = RWSService(db)
    try:
        if user_id is None:
            count = service.recompute_all()
            logger.info(f"Recomputed RWS for {count} users", extra={"task": "recompute_rws"})
            return {"users": count}

        metrics = service.update_user_rws(user_id, trigger=trigger)
        db.commit()
        return metrics.as_dict()
    except NotFoundError as e:
        db.rollback()
        logger.error(e.message, extra={"task": "recompute_rws", "user_id": user_id})
        return None
    except SQLAlchemyError:
        db.rollback()
        raise
