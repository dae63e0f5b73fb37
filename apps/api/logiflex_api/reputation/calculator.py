"""Reputation Weight Score (RWS) computation.

Pure functions only: the caller gathers the raw history (completed
deliveries, bid outcomes, received ratings) and gets back every derived
field. ``RWSService`` in ``reputation.service`` persists the result.

    reliability = otd_rate * 0.4 + acceptance_rate * 0.3 + avg_rating * 20 * 0.3
    rws_score   = round(reliability)

Peer ratings use a 1-5 scale, so they are multiplied by 20 to land on the
same 0-100 range as the two rates.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

OTD_WEIGHT = 0.4
ACCEPTANCE_WEIGHT = 0.3
RATING_WEIGHT = 0.3
RATING_SCALE = 20

RECOMMENDED_MIN_TRANSACTIONS = 5
RECOMMENDED_MIN_OTD_RATE = 85.0
RECOMMENDED_MIN_ACCEPTANCE_RATE = 70.0
RECOMMENDED_MIN_AVG_RATING = 4.0


@dataclass(frozen=True)
class DeliveryRecord:
    """A completed transaction as seen by the OTD calculation."""

    completed_at: Optional[datetime]
    delivery_date: Optional[datetime]


@dataclass(frozen=True)
class RWSMetrics:
    """Derived reputation fields for one user."""

    otd_rate: float
    acceptance_rate: float
    avg_rating: float
    reliability_score: float
    rws_score: int
    total_transactions: int
    on_time_deliveries: int
    late_deliveries: int
    total_bids: int
    accepted_bids: int
    is_recommended: bool

    def as_dict(self) -> dict:
        """Serialize metrics."""
        return asdict(self)


def round_half_up(value: float, places: int = 2) -> float:
    """Round like a cashier does (2.345 -> 2.35), not banker's rounding."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def round_score(value: float) -> int:
    """Round a reliability score to the nearest integer, halves up."""
    return int(Decimal(str(value)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def classify_delivery(record: DeliveryRecord) -> Optional[bool]:
    """Return True for on-time, False for late, None when not timestamped."""
    if record.completed_at is None or record.delivery_date is None:
        return None
    return record.completed_at <= record.delivery_date


def otd_rate(on_time: int, late: int) -> float:
    """Percentage of timestamped deliveries that were on time; 0 with none."""
    timestamped = on_time + late
    if timestamped == 0:
        return 0.0
    return on_time / timestamped * 100


def acceptance_rate(accepted: int, total: int) -> float:
    """Percentage of bids accepted; 0 with no bids."""
    if total == 0:
        return 0.0
    return accepted / total * 100


def average_rating(scores: Iterable[float]) -> float:
    """Mean overall rating; 0 with no ratings."""
    scores = [float(score) for score in scores]
    if not scores:
        return 0.0
    return sum(scores) / len(scores)


def reliability_score(otd: float, acceptance: float, avg_rating: float) -> float:
    """Weighted blend of OTD, acceptance rate and scaled peer rating."""
    return otd * OTD_WEIGHT + acceptance * ACCEPTANCE_WEIGHT + avg_rating * RATING_SCALE * RATING_WEIGHT


def is_recommended(total_transactions: int, otd: float, acceptance: float, avg_rating: float) -> bool:
    """All four thresholds must hold at once."""
    return (
        total_transactions >= RECOMMENDED_MIN_TRANSACTIONS
        and otd >= RECOMMENDED_MIN_OTD_RATE
        and acceptance >= RECOMMENDED_MIN_ACCEPTANCE_RATE
        and avg_rating >= RECOMMENDED_MIN_AVG_RATING
    )


def compute_rws(
    deliveries: Iterable[DeliveryRecord],
    bid_statuses: Iterable[str],
    rating_scores: Iterable[float],
) -> RWSMetrics:
    """Compute every derived reputation field from raw history.

    Args:
        deliveries: completed transactions the user took part in
        bid_statuses: status of every bid the user placed
        rating_scores: overall score of every rating the user received
    """
    deliveries = list(deliveries)
    on_time = 0
    late = 0
    for record in deliveries:
        outcome = classify_delivery(record)
        if outcome is True:
            on_time += 1
        elif outcome is False:
            late += 1

    bid_statuses = list(bid_statuses)
    total_bids = len(bid_statuses)
    accepted_bids = sum(1 for status in bid_statuses if status == "accepted")

    otd = otd_rate(on_time, late)
    acceptance = acceptance_rate(accepted_bids, total_bids)
    avg = average_rating(rating_scores)
    reliability = reliability_score(otd, acceptance, avg)

    return RWSMetrics(
        otd_rate=round_half_up(otd),
        acceptance_rate=round_half_up(acceptance),
        avg_rating=round_half_up(avg),
        reliability_score=round_half_up(reliability),
        rws_score=round_score(reliability),
        total_transactions=len(deliveries),
        on_time_deliveries=on_time,
        late_deliveries=late,
        total_bids=total_bids,
        accepted_bids=accepted_bids,
        is_recommended=is_recommended(len(deliveries), otd, acceptance, avg),
    )
