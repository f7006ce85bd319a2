"""Validator SLA statistics - response tiers and score."""

from datetime import datetime
from enum import Enum

from esla.engine.domain import ValidatorSlaStats

OPTIMAL_HOURS = 6.0
STANDARD_HOURS = 24.0
DELAYED_HOURS = 48.0

# Score weights per tier (timeout weighs 0)
_WEIGHTS = {"optimal": 100, "standard": 80, "delayed": 40}


class ResponseTier(str, Enum):
    OPTIMAL = "optimal"
    STANDARD = "standard"
    DELAYED = "delayed"
    TIMEOUT = "timeout"


def classify_response(hours: float) -> ResponseTier:
    if hours <= OPTIMAL_HOURS:
        return ResponseTier.OPTIMAL
    if hours <= STANDARD_HOURS:
        return ResponseTier.STANDARD
    if hours <= DELAYED_HOURS:
        return ResponseTier.DELAYED
    return ResponseTier.TIMEOUT


def sla_score(stats: ValidatorSlaStats) -> int:
    """Weighted share of responses per tier, 0-100. Empty history scores 100."""
    total = stats.total_validations
    if total == 0:
        return 100
    weighted = (
        stats.optimal_validations * _WEIGHTS["optimal"]
        + stats.standard_validations * _WEIGHTS["standard"]
        + stats.delayed_validations * _WEIGHTS["delayed"]
    )
    # Half-up, so 12.5 scores 13
    return int(weighted / total + 0.5)


def record_response(stats: ValidatorSlaStats, hours: float, now: datetime) -> ValidatorSlaStats:
    """Stats after a completed validation that took `hours`."""
    tier = classify_response(hours)
    total = stats.total_validations + 1
    counts = {
        "optimal_validations": stats.optimal_validations,
        "standard_validations": stats.standard_validations,
        "delayed_validations": stats.delayed_validations,
        "timeout_validations": stats.timeout_validations,
    }
    counts[f"{tier.value}_validations"] += 1
    streak = stats.current_streak + 1 if tier in (ResponseTier.OPTIMAL, ResponseTier.STANDARD) else 0
    average = ((stats.average_response_hours * stats.total_validations) + hours) / total

    updated = stats.model_copy(
        update={
            **counts,
            "total_validations": total,
            "average_response_hours": round(average, 2),
            "current_streak": streak,
            "last_activity_date": now,
        }
    )
    return updated.model_copy(update={"sla_score": sla_score(updated)})


def record_timeout(stats: ValidatorSlaStats) -> ValidatorSlaStats:
    """Stats after the validator let an assignment time out."""
    updated = stats.model_copy(
        update={
            "total_validations": stats.total_validations + 1,
            "timeout_validations": stats.timeout_validations + 1,
            "current_streak": 0,
        }
    )
    return updated.model_copy(update={"sla_score": sla_score(updated)})
