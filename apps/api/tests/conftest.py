"""Pytest configuration and fixtures."""

import os
import random
import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from logiflex_api.auth.api_key import compute_key_digest, compute_key_prefix
from logiflex_api.db.base import Base
from logiflex_api.db.session import get_db
from logiflex_api.ettn.signer import MockEDSService, get_eds_service
from logiflex_api.main import app
from logiflex_api.marketplace.bids import BidService
from logiflex_api.models import Bid, Cargo, User
from logiflex_api.notifications.outbox import NotificationOutbox
from logiflex_api.notifications.publisher import NotificationPublisher, get_publisher
from logiflex_api.utils.clock import utcnow

# Use test database URL from environment or default to SQLite in-memory
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")


class RecordingPublisher(NotificationPublisher):
    """Publisher that keeps deliveries in memory."""

    backend = "recording"

    def __init__(self):
        self.delivered = []

    def _deliver(self, user_id: str, payload: dict) -> None:
        self.delivered.append((user_id, payload))

    def types_for(self, user_id: str) -> list[str]:
        return [payload["type"] for recipient, payload in self.delivered if recipient == user_id]


@pytest.fixture(scope="function")
def engine():
    """Fresh schema per test."""
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(TEST_DATABASE_URL)

    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory) -> Session:
    """Test database session, shared with the app under test."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def eds() -> MockEDSService:
    """Mock signer without artificial latency; verification always passes."""
    return MockEDSService(
        sign_latency_ms=0,
        verify_latency_ms=0,
        verify_success_rate=1.0,
        rng=random.Random(7),
    )


@pytest.fixture
def outbox() -> NotificationOutbox:
    return NotificationOutbox()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def client(db: Session, eds: MockEDSService, publisher: RecordingPublisher):
    """TestClient wired to the test session, signer and publisher."""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_eds_service] = lambda: eds
    app.dependency_overrides[get_publisher] = lambda: publisher
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_user(db: Session):
    """Factory creating a user; returns (user, auth headers)."""

    def _make_user(role: str = "shipper", **fields):
        raw_key = f"lfx_test-{uuid.uuid4().hex}"
        user = User(
            email=fields.pop("email", f"{role}-{uuid.uuid4().hex[:8]}@example.kz"),
            first_name=fields.pop("first_name", role.capitalize()),
            last_name=fields.pop("last_name", "Test"),
            role=role,
            api_key_prefix=compute_key_prefix(raw_key),
            api_key_digest=compute_key_digest(raw_key),
            **fields,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user, {"x-api-key": raw_key}

    return _make_user


@pytest.fixture
def shipper_with_headers(make_user):
    return make_user("shipper", company_name="Shipper LLP", bin="123456789012")


@pytest.fixture
def carrier_with_headers(make_user):
    return make_user("carrier", company_name="Carrier LLP", iin="900101300123")


@pytest.fixture
def shipper(shipper_with_headers) -> User:
    return shipper_with_headers[0]


@pytest.fixture
def carrier(carrier_with_headers) -> User:
    return carrier_with_headers[0]


@pytest.fixture
def admin(make_user) -> User:
    return make_user("admin")[0]


@pytest.fixture
def make_cargo(db: Session):
    """Factory creating an active cargo listing."""

    def _make_cargo(owner: User, **fields):
        now = utcnow()
        cargo = Cargo(
            user_id=owner.id,
            title=fields.pop("title", "Цемент"),
            description=fields.pop("description", "Цемент М500 на паллетах"),
            category=fields.pop("category", "construction"),
            origin=fields.pop("origin", "Алматы"),
            destination=fields.pop("destination", "Астана"),
            weight=fields.pop("weight", Decimal("1500.00")),
            price=fields.pop("price", Decimal("250000.00")),
            pickup_date=fields.pop("pickup_date", now + timedelta(days=1)),
            delivery_date=fields.pop("delivery_date", now + timedelta(days=5)),
            status=fields.pop("status", "active"),
            **fields,
        )
        db.add(cargo)
        db.commit()
        db.refresh(cargo)
        return cargo

    return _make_cargo


@pytest.fixture
def make_bid(db: Session):
    """Factory creating a pending bid."""

    def _make_bid(cargo: Cargo, carrier: User, **fields):
        bid = Bid(
            cargo_id=cargo.id,
            carrier_id=carrier.id,
            bid_amount=fields.pop("bid_amount", Decimal("200000.00")),
            delivery_time=fields.pop("delivery_time", "3 дня"),
            vehicle_type=fields.pop("vehicle_type", "Фура 20т"),
            status=fields.pop("status", "pending"),
            **fields,
        )
        db.add(bid)
        db.commit()
        db.refresh(bid)
        return bid

    return _make_bid


@pytest.fixture
def cargo(make_cargo, shipper) -> Cargo:
    return make_cargo(shipper)


@pytest.fixture
def bid(make_bid, cargo, carrier) -> Bid:
    return make_bid(cargo, carrier)


@pytest.fixture
def transaction(db: Session, bid, shipper):
    """Transaction created by accepting the carrier's bid."""
    _, transaction = BidService(db, NotificationOutbox()).decide(shipper, bid.id, "accepted")
    return transaction
