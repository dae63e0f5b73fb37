"""Tests for notification delivery, the inbox and chat messages."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from logiflex_api.errors import ForbiddenError, NotFoundError, ValidationError
from logiflex_api.models import Notification
from logiflex_api.notifications.chat import ChatHub, MessageService
from logiflex_api.notifications.outbox import NotificationOutbox
from logiflex_api.notifications.publisher import (
    DELIVER_NOTIFICATION_TASK,
    CeleryNotificationPublisher,
    DatabaseNotificationPublisher,
    NotificationPublisher,
)
from logiflex_api.notifications.service import NotificationService


class ExplodingPublisher(NotificationPublisher):
    backend = "exploding"

    def _deliver(self, user_id, payload):
        raise ConnectionError("broker unavailable")


def test_outbox_flush_delivers_and_empties(publisher):
    outbox = NotificationOutbox()
    outbox.publish("u1", "new_bid", "Новая ставка", "text", "/cargo/1")
    outbox.publish("u2", "bid_rejected", "Ставка отклонена", "text")

    assert len(outbox) == 2
    assert outbox.flush(publisher) == 2
    assert len(outbox) == 0
    assert publisher.delivered[0] == (
        "u1",
        {"type": "new_bid", "title": "Новая ставка", "message": "text", "link": "/cargo/1"},
    )


def test_delivery_failures_are_swallowed():
    outbox = NotificationOutbox()
    outbox.publish("u1", "new_bid", "t", "m")

    assert ExplodingPublisher().deliver("u1", {"type": "new_bid"}) is False
    assert outbox.flush(ExplodingPublisher()) == 0


def test_database_publisher_uses_own_session(db, session_factory, carrier):
    publisher = DatabaseNotificationPublisher(session_factory)
    assert publisher.deliver(carrier.id, {"type": "bid_accepted", "title": "t", "message": "m", "link": None})

    stored = db.query(Notification).filter(Notification.user_id == carrier.id).one()
    assert stored.type == "bid_accepted"
    assert stored.is_read is False


def test_celery_publisher_enqueues_task():
    celery_app = MagicMock()
    payload = {"type": "status_update", "title": "t", "message": "m", "link": None}

    assert CeleryNotificationPublisher(celery_app).deliver("u1", payload) is True
    celery_app.send_task.assert_called_once_with(DELIVER_NOTIFICATION_TASK, args=["u1", payload])


def test_celery_publisher_broker_failure_returns_false():
    celery_app = MagicMock()
    celery_app.send_task.side_effect = ConnectionError("redis down")
    assert CeleryNotificationPublisher(celery_app).deliver("u1", {"type": "x"}) is False


class TestInbox:
    """Notifications are only visible to their owner."""

    @pytest.fixture
    def notifications(self, db, shipper):
        rows = [
            Notification(user_id=shipper.id, type="new_bid", title=f"n{i}", message="m") for i in range(3)
        ]
        db.add_all(rows)
        db.commit()
        return rows

    def test_mark_read_and_filter_unread(self, db, notifications, shipper):
        service = NotificationService(db)
        service.mark_read(notifications[0].id, shipper.id)

        assert len(service.list_for_user(shipper.id)) == 3
        assert len(service.list_for_user(shipper.id, unread_only=True)) == 2

    def test_mark_all_read(self, db, notifications, shipper):
        service = NotificationService(db)
        assert service.mark_all_read(shipper.id) == 3
        assert service.list_for_user(shipper.id, unread_only=True) == []

    def test_foreign_notification_is_not_found(self, db, notifications, carrier):
        service = NotificationService(db)
        with pytest.raises(NotFoundError):
            service.mark_read(notifications[0].id, carrier.id)
        with pytest.raises(NotFoundError):
            service.delete(notifications[0].id, carrier.id)

    def test_delete(self, db, notifications, shipper):
        service = NotificationService(db)
        service.delete(notifications[0].id, shipper.id)
        assert len(service.list_for_user(shipper.id)) == 2


class TestMessages:
    """Chat between the two parties."""

    def test_message_notifies_counterparty(self, db, outbox, transaction, shipper, carrier):
        message = MessageService(db, outbox).create_message(carrier, transaction.id, "  Выезжаю  ")

        assert message.content == "Выезжаю"
        assert [(n.user_id, n.type) for n in outbox.pending] == [(shipper.id, "new_message")]
        assert [m.id for m in MessageService(db).list_messages(shipper, transaction.id)] == [message.id]

    def test_blank_message_rejected(self, db, transaction, carrier):
        with pytest.raises(ValidationError):
            MessageService(db).create_message(carrier, transaction.id, "   ")

    def test_outsider_cannot_read_or_write(self, db, transaction, make_user):
        outsider, _ = make_user("carrier")
        with pytest.raises(ForbiddenError):
            MessageService(db).create_message(outsider, transaction.id, "hi")
        with pytest.raises(ForbiddenError):
            MessageService(db).list_messages(outsider, transaction.id)


def test_chat_hub_broadcast_drops_dead_sockets():
    hub = ChatHub()
    alive = MagicMock()
    alive.send_json = AsyncMock()
    dead = MagicMock()
    dead.send_json = AsyncMock(side_effect=RuntimeError("closed"))
    hub.join("tx-1", alive)
    hub.join("tx-1", dead)

    assert asyncio.run(hub.broadcast("tx-1", {"type": "new_message"})) == 1
    alive.send_json.assert_awaited_once_with({"type": "new_message"})
    assert hub.connections("tx-1") == 1

    hub.leave("tx-1", alive)
    assert hub.connections("tx-1") == 0


def test_chat_hub_broadcast_survives_transport_errors():
    hub = ChatHub()
    broken = MagicMock()
    broken.send_json = AsyncMock(side_effect=OSError("transport closed"))
    alive = MagicMock()
    alive.send_json = AsyncMock()
    hub.join("tx-2", broken)
    hub.join("tx-2", alive)

    assert asyncio.run(hub.broadcast("tx-2", {"type": "new_message"})) == 1
    alive.send_json.assert_awaited_once_with({"type": "new_message"})
    assert hub.connections("tx-2") == 1
