"""Tests for worker tasks, run eagerly against the test database."""

from unittest.mock import PropertyMock, patch

import pytest

from logiflex_api.models import Notification
from logiflex_worker.tasks import DatabaseTask, deliver_notification, recompute_rws


@pytest.fixture
def worker_db(db):
    with patch.object(DatabaseTask, "db", new_callable=PropertyMock, return_value=db):
        yield db


def test_deliver_notification_persists_row(worker_db, carrier):
    payload = {"type": "bid_accepted", "title": "Ставка принята", "message": "m", "link": "/transactions/1"}

    notification_id = deliver_notification(carrier.id, payload, correlation_id="req-1")

    stored = worker_db.query(Notification).filter(Notification.id == notification_id).one()
    assert stored.user_id == carrier.id
    assert stored.link == "/transactions/1"


def test_deliver_notification_drops_unknown_user(worker_db):
    assert deliver_notification("missing", {"type": "x", "title": "t", "message": "m"}) is None
    assert worker_db.query(Notification).count() == 0


def test_recompute_single_user(worker_db, transaction, carrier):
    result = recompute_rws(carrier.id, trigger="worker")
    assert result["rws_score"] == 30
    assert result["accepted_bids"] == 1


def test_recompute_everyone(worker_db, shipper, carrier):
    assert recompute_rws() == {"users": 2}


def test_recompute_unknown_user(worker_db):
    assert recompute_rws("missing") is None
