"""In-app notification inbox."""

from sqlalchemy.orm import Session

from logiflex_api.errors import NotFoundError
from logiflex_api.models import Notification


class NotificationService:
    """Read side of delivered notifications, scoped to their owner."""

    def __init__(self, db: Session):
        self.db = db

    def _get_own(self, notification_id: str, user_id: str) -> Notification:
        notification = (
            self.db.query(Notification)
            .filter(Notification.id == notification_id, Notification.user_id == user_id)
            .first()
        )
        if not notification:
            raise NotFoundError(f"Notification {notification_id} not found")
        return notification

    def list_for_user(self, user_id: str, unread_only: bool = False) -> list[Notification]:
        query = self.db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.is_read == False)  # noqa: E712
        return query.order_by(Notification.created_at.desc()).all()

    def mark_read(self, notification_id: str, user_id: str) -> Notification:
        notification = self._get_own(notification_id, user_id)
        notification.is_read = True
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def mark_all_read(self, user_id: str) -> int:
        updated = (
            self.db.query(Notification)
            .filter(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
            .update({Notification.is_read: True}, synchronize_session=False)
        )
        self.db.commit()
        return updated

    def delete(self, notification_id: str, user_id: str) -> None:
        notification = self._get_own(notification_id, user_id)
        self.db.delete(notification)
        self.db.commit()
