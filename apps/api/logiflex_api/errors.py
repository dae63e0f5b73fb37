"""Business-rule errors raised by services.

Each error carries the HTTP status it maps to; ``main`` installs a single
exception handler that renders them. None of them are retried.
"""

from typing import Optional


class MarketplaceError(Exception):
    """Base class for deterministic business-rule rejections."""

    status_code = 400
    code = "marketplace_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        """Serialize error for the response body."""
        body = {"detail": self.message, "code": self.code}
        if self.field:
            body["field"] = self.field
        return body


class NotFoundError(MarketplaceError):
    """Referenced cargo, bid, transaction, E-TTN or user is missing."""

    status_code = 404
    code = "not_found"


class ForbiddenError(MarketplaceError):
    """Caller lacks the required relationship to the resource."""

    status_code = 403
    code = "forbidden"


class ValidationError(MarketplaceError):
    """Malformed input or an invalid target status."""

    status_code = 400
    code = "validation_error"


class ConflictError(MarketplaceError):
    """Already signed, already exists, already accepted."""

    status_code = 400
    code = "conflict"
