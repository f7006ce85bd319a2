"""Unit tests for validator SLA statistics."""

from datetime import datetime, timezone

from esla.engine.domain import ValidatorSlaStats
from esla.engine.sla_stats import (
    ResponseTier,
    classify_response,
    record_response,
    record_timeout,
    sla_score,
)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def test_classify_response_tiers():
    """Tier boundaries are inclusive: 6h, 24h, 48h."""
    assert classify_response(0.5) == ResponseTier.OPTIMAL
    assert classify_response(6.0) == ResponseTier.OPTIMAL
    assert classify_response(6.01) == ResponseTier.STANDARD
    assert classify_response(24.0) == ResponseTier.STANDARD
    assert classify_response(48.0) == ResponseTier.DELAYED
    assert classify_response(48.5) == ResponseTier.TIMEOUT


def test_empty_history_scores_100():
    assert sla_score(ValidatorSlaStats()) == 100


def test_record_response_updates_counts_and_average():
    """Two responses: one optimal, one delayed."""
    stats = record_response(ValidatorSlaStats(), 2.0, NOW)
    stats = record_response(stats, 30.0, NOW)
    assert stats.total_validations == 2
    assert stats.optimal_validations == 1
    assert stats.delayed_validations == 1
    assert stats.average_response_hours == 16.0
    assert stats.sla_score == 70  # (100 + 40) / 2
    assert stats.current_streak == 0
    assert stats.last_activity_date == NOW


def test_streak_counts_on_time_responses():
    stats = ValidatorSlaStats()
    for h in (1.0, 10.0, 20.0):
        stats = record_response(stats, h, NOW)
    assert stats.current_streak == 3
    assert stats.sla_score == 87  # 260 / 3


def test_record_timeout_penalizes():
    """A timeout counts as a validation worth 0 and resets the streak."""
    stats = record_response(ValidatorSlaStats(), 1.0, NOW)
    stats = record_timeout(stats)
    assert stats.total_validations == 2
    assert stats.timeout_validations == 1
    assert stats.current_streak == 0
    assert stats.sla_score == 50


def test_score_rounds_half_up():
    """1 optimal + 7 timeouts averages 12.5 and scores 13."""
    stats = ValidatorSlaStats(total_validations=8, optimal_validations=1, timeout_validations=7)
    assert sla_score(stats) == 13
    stats = ValidatorSlaStats(total_validations=2, optimal_validations=1, delayed_validations=1)
    assert sla_score(stats) == 70
