"""Seed data for development and testing."""

from datetime import timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from logiflex_api.auth.api_key import compute_key_digest, compute_key_prefix
from logiflex_api.models import Cargo, User
from logiflex_api.utils.clock import utcnow

DEMO_USERS = [
    {
        "email": "shipper@demo.logiflex.kz",
        "first_name": "Айгерим",
        "last_name": "Сапарова",
        "role": "shipper",
        "company_name": "Demo Shipper LLP",
        "bin": "123456789012",
        "api_key": "lfx_demo-shipper-key",
    },
    {
        "email": "carrier@demo.logiflex.kz",
        "first_name": "Ерлан",
        "last_name": "Жумабаев",
        "role": "carrier",
        "company_name": "Demo Carrier LLP",
        "iin": "900101300123",
        "api_key": "lfx_demo-carrier-key",
    },
    {
        "email": "admin@demo.logiflex.kz",
        "first_name": "Admin",
        "role": "admin",
        "api_key": "lfx_demo-admin-key",
    },
]


def seed_users(db: Session):
    """Seed demo users with fixed API keys."""
    for data in DEMO_USERS:
        data = dict(data)
        api_key = data.pop("api_key")
        user = db.query(User).filter(User.email == data["email"]).first()
        if not user:
            user = User(
                **data,
                is_verified=True,
                api_key_prefix=compute_key_prefix(api_key),
                api_key_digest=compute_key_digest(api_key),
            )
            db.add(user)
            db.flush()
            print(f"✓ Created {user.role}: {user.email} (ID: {user.id})")
            print(f"  API Key: {api_key}")
        else:
            print(f"✓ User already exists: {user.email}")
    db.commit()


def seed_cargo(db: Session):
    """Seed one active demo listing."""
    shipper = db.query(User).filter(User.email == DEMO_USERS[0]["email"]).first()
    if not shipper:
        return
    if db.query(Cargo).filter(Cargo.user_id == shipper.id).first():
        print("✓ Demo cargo already exists")
        return

    now = utcnow()
    cargo = Cargo(
        user_id=shipper.id,
        title="Строительные материалы",
        description="Цемент М500, 400 мешков на паллетах",
        category="construction",
        origin="Алматы",
        destination="Астана",
        weight=Decimal("20000.00"),
        price=Decimal("450000.00"),
        pickup_date=now + timedelta(days=2),
        delivery_date=now + timedelta(days=5),
        auction_end_date=now + timedelta(days=1),
        status="active",
    )
    db.add(cargo)
    db.commit()
    print(f"✓ Created demo cargo: {cargo.title} (ID: {cargo.id})")


def seed_all(db: Session):
    """Seed all data."""
    print("Seeding database...")
    seed_users(db)
    seed_cargo(db)
    print("✓ Seeding complete!")
