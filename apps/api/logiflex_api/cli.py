"""CLI commands for LogiFlex API."""

from typing import Optional

import click

from logiflex_api.db.seed import seed_all
from logiflex_api.db.session import SessionLocal, engine


@click.group()
def cli():
    """LogiFlex API CLI."""
    pass


@cli.command("init-db")
def init_db():
    """Create all tables."""
    from logiflex_api import models  # noqa: F401  (registers tables)
    from logiflex_api.db.base import Base

    Base.metadata.create_all(bind=engine)
    click.echo("✓ Tables created.")


@cli.command()
def seed():
    """Seed initial data."""
    click.echo("Seeding initial data...")
    db = SessionLocal()
    try:
        seed_all(db)
        click.echo("✓ Seed data created.")
    except Exception as e:
        click.echo(f"✗ Error seeding data: {e}", err=True)
        db.rollback()
        raise SystemExit(1)
    finally:
        db.close()


@cli.command("recompute-rws")
@click.option("--user-id", default=None, help="Recompute a single user instead of everyone.")
def recompute_rws(user_id: Optional[str]):
    """Recompute reputation scores from stored history."""
    from logiflex_api.errors import NotFoundError
    from logiflex_api.reputation.service import RWSService

    db = SessionLocal()
    try:
        service = RWSService(db)
        if user_id:
            metrics = service.update_user_rws(user_id, trigger="manual")
            db.commit()
            click.echo(f"✓ {user_id}: RWS {metrics.rws_score} (recommended: {metrics.is_recommended})")
        else:
            count = service.recompute_all()
            click.echo(f"✓ Recomputed RWS for {count} users.")
    except NotFoundError as e:
        db.rollback()
        click.echo(f"✗ {e.message}", err=True)
        raise SystemExit(1)
    finally:
        db.close()


@cli.command("issue-api-key")
@click.argument("email")
def issue_api_key_command(email: str):
    """Issue a new API key for a user, replacing the old one."""
    from logiflex_api.auth.api_key import issue_api_key
    from logiflex_api.models import User

    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email).first()
        if not user:
            click.echo(f"✗ No user with email {email}", err=True)
            raise SystemExit(1)
        raw_key = issue_api_key(db, user)
        click.echo(f"✓ API key for {email}: {raw_key}")
        click.echo("  Store it now; it cannot be shown again.")
    finally:
        db.close()


if __name__ == "__main__":
    cli()
