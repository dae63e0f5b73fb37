"""API key authentication with prefix+digest lookup."""

import hashlib
import hmac
import logging
import secrets
from typing import Optional

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader
from sqlalchemy.orm import Session

from logiflex_api.db.session import get_db
from logiflex_api.models import User
from logiflex_api.settings import get_settings

logger = logging.getLogger(__name__)

api_key_header = APIKeyHeader(name="x-api-key", auto_error=False)

API_KEY_PREFIX = "lfx_"


def compute_key_prefix(raw_key: str) -> str:
    """Compute prefix (first 8 chars) of API key."""
    return raw_key[:8] if len(raw_key) >= 8 else raw_key


def compute_key_digest(raw_key: str) -> str:
    """Compute HMAC-SHA256 digest of API key."""
    secret = get_settings().secret_key.encode()
    return hmac.new(secret, raw_key.encode(), hashlib.sha256).hexdigest()


def generate_api_key() -> str:
    """Generate a new raw API key."""
    return f"{API_KEY_PREFIX}{secrets.token_urlsafe(32)}"


def issue_api_key(db: Session, user: User) -> str:
    """Replace the user's API key; returns the raw key, which is not stored."""
    raw_key = generate_api_key()
    user.api_key_prefix = compute_key_prefix(raw_key)
    user.api_key_digest = compute_key_digest(raw_key)
    db.commit()
    logger.info("API key issued", extra={"user_id": user.id, "prefix": user.api_key_prefix})
    return raw_key


def get_user_by_api_key(db: Session, api_key: str) -> Optional[User]:
    """Resolve a raw API key to its user."""
    if not api_key or len(api_key) < 8:
        return None

    digest = compute_key_digest(api_key)
    # Prefixes are indexed but not unique
    candidates = db.query(User).filter(User.api_key_prefix == compute_key_prefix(api_key)).all()
    for user in candidates:
        if user.api_key_digest and hmac.compare_digest(user.api_key_digest, digest):
            return user
    return None


def get_current_user(
    request: Request,
    x_api_key: Optional[str] = Security(api_key_header),
    db: Session = Depends(get_db),
) -> User:
    """Get current user from API key."""
    if not x_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Provide x-api-key header.",
        )

    user = get_user_by_api_key(db, x_api_key)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or revoked API key.",
        )

    request.state.user_id = user.id
    logger.debug(
        "Authenticated request",
        extra={
            "user_id": user.id,
            "correlation_id": getattr(request.state, "correlation_id", None),
            "path": request.url.path,
        },
    )
    return user
