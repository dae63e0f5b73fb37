"""Lifecycle states and transition tables for cargo, bids, transactions and E-TTNs.

Every status change in the marketplace goes through ``ensure_transition`` (or
the role-aware ``ensure_transaction_transition``); nothing writes a status
that is not reachable from the current one.
"""

from enum import Enum
from typing import Optional

from logiflex_api.errors import ForbiddenError, ValidationError


class UserRole(str, Enum):
    """Marketplace roles."""

    SHIPPER = "shipper"
    CARRIER = "carrier"
    ADMIN = "admin"


class CargoStatus(str, Enum):
    """Cargo listing states."""

    ACTIVE = "active"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BidStatus(str, Enum):
    """Bid states."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class TransactionStatus(str, Enum):
    """Transaction states."""

    CREATED = "created"
    CONFIRMED = "confirmed"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    DISPUTED = "disputed"


class ETTNStatus(str, Enum):
    """E-TTN document states."""

    DRAFT = "draft"
    PENDING_SIGNATURE = "pending_signature"
    PARTIALLY_SIGNED = "partially_signed"
    FULLY_SIGNED = "fully_signed"
    COMPLETED = "completed"


CARGO_TRANSITIONS = {
    CargoStatus.ACTIVE: {CargoStatus.IN_PROGRESS, CargoStatus.CANCELLED},
    CargoStatus.IN_PROGRESS: {CargoStatus.COMPLETED},
    CargoStatus.COMPLETED: set(),
    CargoStatus.CANCELLED: set(),
}

BID_TRANSITIONS = {
    BidStatus.PENDING: {BidStatus.ACCEPTED, BidStatus.REJECTED},
    BidStatus.ACCEPTED: set(),
    BidStatus.REJECTED: set(),
}

TRANSACTION_TRANSITIONS = {
    TransactionStatus.CREATED: {TransactionStatus.CONFIRMED, TransactionStatus.DISPUTED},
    TransactionStatus.CONFIRMED: {TransactionStatus.IN_TRANSIT, TransactionStatus.DISPUTED},
    TransactionStatus.IN_TRANSIT: {TransactionStatus.DELIVERED, TransactionStatus.DISPUTED},
    TransactionStatus.DELIVERED: {TransactionStatus.COMPLETED, TransactionStatus.DISPUTED},
    TransactionStatus.COMPLETED: set(),
    TransactionStatus.DISPUTED: set(),
}

# Party allowed to move a transaction into a state. None means either party.
TRANSACTION_ACTORS = {
    TransactionStatus.CONFIRMED: UserRole.SHIPPER,
    TransactionStatus.IN_TRANSIT: UserRole.CARRIER,
    TransactionStatus.DELIVERED: UserRole.CARRIER,
    TransactionStatus.COMPLETED: UserRole.SHIPPER,
    TransactionStatus.DISPUTED: None,
}

ETTN_TRANSITIONS = {
    ETTNStatus.DRAFT: {ETTNStatus.PENDING_SIGNATURE},
    ETTNStatus.PENDING_SIGNATURE: {ETTNStatus.PARTIALLY_SIGNED, ETTNStatus.FULLY_SIGNED},
    ETTNStatus.PARTIALLY_SIGNED: {ETTNStatus.FULLY_SIGNED},
    ETTNStatus.FULLY_SIGNED: {ETTNStatus.COMPLETED},
    ETTNStatus.COMPLETED: set(),
}

_TABLES = {
    CargoStatus: CARGO_TRANSITIONS,
    BidStatus: BID_TRANSITIONS,
    TransactionStatus: TRANSACTION_TRANSITIONS,
    ETTNStatus: ETTN_TRANSITIONS,
}


def parse_status(status_enum: type[Enum], value: str, field: str = "status") -> Enum:
    """Convert a raw status string to its enum, raising ValidationError if unknown."""
    try:
        return status_enum(value)
    except ValueError:
        allowed = ", ".join(member.value for member in status_enum)
        raise ValidationError(f"Invalid {field} '{value}'. Expected one of: {allowed}", field=field)


def can_transition(current: Enum, target: Enum) -> bool:
    """Check whether ``target`` is reachable from ``current`` in one step."""
    table = _TABLES[type(current)]
    return target in table[current]


def is_terminal(status: Enum) -> bool:
    """Check whether a state has no outgoing transitions."""
    return not _TABLES[type(status)][status]


def ensure_transition(current: Enum, target: Enum, entity: str = "entity") -> None:
    """Raise ValidationError unless ``current -> target`` is in the table."""
    if not can_transition(current, target):
        raise ValidationError(
            f"Cannot move {entity} from '{current.value}' to '{target.value}'",
            field="status",
        )


def ensure_transaction_transition(
    current: TransactionStatus,
    target: TransactionStatus,
    actor_role: Optional[str],
    is_admin: bool = False,
) -> None:
    """Validate a transaction move for the acting party.

    ``actor_role`` is the caller's role on the transaction ("shipper" or
    "carrier"). Admins may perform any legal move.
    """
    ensure_transition(current, target, entity="transaction")
    if is_admin:
        return
    required = TRANSACTION_ACTORS.get(target)
    if required is not None and actor_role != required.value:
        raise ForbiddenError(
            f"Only the {required.value} can move a transaction to '{target.value}'"
        )
