"""Tests for the RWS calculator."""

from datetime import datetime

import pytest

from logiflex_api.reputation.calculator import (
    DeliveryRecord,
    acceptance_rate,
    average_rating,
    classify_delivery,
    compute_rws,
    is_recommended,
    otd_rate,
    reliability_score,
    round_half_up,
    round_score,
)

DECLARED = datetime(2025, 1, 10)


def on_time(n):
    return [DeliveryRecord(completed_at=datetime(2025, 1, 9), delivery_date=DECLARED)] * n


def late(n):
    return [DeliveryRecord(completed_at=datetime(2025, 1, 11), delivery_date=DECLARED)] * n


class TestDeliveryClassification:
    """On-time versus late."""

    def test_completed_before_declared_date_is_on_time(self):
        assert classify_delivery(DeliveryRecord(datetime(2025, 1, 9), DECLARED)) is True

    def test_completed_after_declared_date_is_late(self):
        assert classify_delivery(DeliveryRecord(datetime(2025, 1, 11), DECLARED)) is False

    def test_completed_exactly_on_declared_date_is_on_time(self):
        assert classify_delivery(DeliveryRecord(DECLARED, DECLARED)) is True

    def test_missing_timestamps_are_not_classified(self):
        assert classify_delivery(DeliveryRecord(None, DECLARED)) is None
        assert classify_delivery(DeliveryRecord(datetime(2025, 1, 9), None)) is None


class TestRates:
    """Zero denominators and basic ratios."""

    def test_otd_rate_without_timestamped_deliveries_is_zero(self):
        assert otd_rate(0, 0) == 0.0

    def test_acceptance_rate_without_bids_is_zero(self):
        assert acceptance_rate(0, 0) == 0.0

    def test_three_of_four_bids_accepted(self):
        assert acceptance_rate(3, 4) == 75.0

    def test_average_rating_without_ratings_is_zero(self):
        assert average_rating([]) == 0.0

    def test_average_rating(self):
        assert average_rating([4.0, 5.0, 4.5]) == pytest.approx(4.5)

    def test_reliability_formula(self):
        assert reliability_score(90, 80, 4.2) == pytest.approx(90 * 0.4 + 80 * 0.3 + 4.2 * 20 * 0.3)


class TestRounding:
    """Half-up rounding for stored values."""

    def test_round_half_up_two_places(self):
        assert round_half_up(2.345) == 2.35
        assert round_half_up(66.666666) == 66.67

    def test_round_score_halves_go_up(self):
        assert round_score(72.5) == 73
        assert round_score(72.49) == 72


class TestRecommendation:
    """All four thresholds must hold."""

    def test_all_thresholds_met(self):
        assert is_recommended(5, 90, 80, 4.2) is True

    def test_low_average_rating(self):
        assert is_recommended(5, 90, 80, 3.9) is False

    @pytest.mark.parametrize(
        "total, otd, acceptance, rating",
        [
            (4, 90, 80, 4.2),
            (5, 84.99, 80, 4.2),
            (5, 90, 69.99, 4.2),
            (5, 90, 80, 3.99),
        ],
    )
    def test_any_single_threshold_below_flips_false(self, total, otd, acceptance, rating):
        assert is_recommended(total, otd, acceptance, rating) is False

    def test_thresholds_are_inclusive(self):
        assert is_recommended(5, 85, 70, 4.0) is True


class TestComputeRWS:
    """Full computation from raw history."""

    def test_empty_history(self):
        metrics = compute_rws([], [], [])
        assert metrics.otd_rate == 0.0
        assert metrics.acceptance_rate == 0.0
        assert metrics.avg_rating == 0.0
        assert metrics.rws_score == 0
        assert metrics.is_recommended is False

    def test_delivery_scenario(self):
        metrics = compute_rws(on_time(1) + late(1), [], [])
        assert metrics.on_time_deliveries == 1
        assert metrics.late_deliveries == 1
        assert metrics.otd_rate == 50.0
        assert metrics.total_transactions == 2

    def test_untimestamped_deliveries_count_as_transactions_only(self):
        metrics = compute_rws(on_time(1) + [DeliveryRecord(datetime(2025, 1, 9), None)], [], [])
        assert metrics.total_transactions == 2
        assert metrics.otd_rate == 100.0

    def test_acceptance_scenario(self):
        metrics = compute_rws([], ["accepted", "accepted", "accepted", "rejected"], [])
        assert metrics.total_bids == 4
        assert metrics.accepted_bids == 3
        assert metrics.acceptance_rate == 75.0

    def test_pending_bids_count_toward_total(self):
        metrics = compute_rws([], ["accepted", "pending"], [])
        assert metrics.acceptance_rate == 50.0

    def test_score_matches_formula(self):
        metrics = compute_rws(on_time(3) + late(1), ["accepted", "rejected", "accepted"], [4.5, 3.75])
        expected = 75.0 * 0.4 + (2 / 3 * 100) * 0.3 + 4.125 * 20 * 0.3
        assert metrics.rws_score == round_score(expected)
        assert metrics.reliability_score == round_half_up(expected)
        assert metrics.acceptance_rate == 66.67

    def test_recommendation_scenario(self):
        bids = ["accepted"] * 4 + ["rejected"]
        recommended = compute_rws(on_time(5), bids, [4.2])
        assert recommended.total_transactions == 5
        assert recommended.acceptance_rate == 80.0
        assert recommended.is_recommended is True

        not_recommended = compute_rws(on_time(5), bids, [3.9])
        assert not_recommended.is_recommended is False

    def test_recompute_is_idempotent(self):
        args = (on_time(2) + late(1), ["accepted", "rejected"], [4.0, 5.0])
        assert compute_rws(*args) == compute_rws(*args)
