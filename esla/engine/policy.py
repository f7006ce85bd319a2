"""SLA policy table - deadline and escalation ladder per SLA level."""

from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict

from esla.config import Settings
from esla.engine.domain import SlaLevel
from esla.engine.errors import PolicyError


class SlaPolicy(BaseModel):
    """Policy entry for one SLA level.

    max_escalations only bounds the final (self-escalating) rung: a missed
    deadline there fails the request once escalation_level reaches it. On
    lower rungs it is informational, since a miss always promotes.
    """

    model_config = ConfigDict(frozen=True)

    level: SlaLevel
    deadline: timedelta
    escalates_to: SlaLevel
    max_escalations: int
    urgency_increment: float

    @property
    def is_final_rung(self) -> bool:
        return self.escalates_to == self.level


class SlaPolicyTable:
    """Static mapping SLA level -> SlaPolicy. Lookups are pure."""

    def __init__(self, policies: list[SlaPolicy]) -> None:
        self._policies = {p.level: p for p in policies}
        self._validate()

    def _validate(self) -> None:
        missing = [lvl.value for lvl in SlaLevel if lvl not in self._policies]
        if missing:
            raise PolicyError(f"Missing SLA policy for: {', '.join(missing)}")
        finals = 0
        for p in self._policies.values():
            if p.escalates_to.rank < p.level.rank:
                raise PolicyError(f"{p.level.value} cannot escalate down to {p.escalates_to.value}")
            if p.deadline <= timedelta(0):
                raise PolicyError(f"{p.level.value} deadline must be positive")
            if p.max_escalations < 0:
                raise PolicyError(f"{p.level.value} max_escalations must be >= 0")
            if p.is_final_rung:
                finals += 1
        if finals == 0:
            raise PolicyError("Escalation ladder has no final rung")

    def policy(self, level: SlaLevel) -> SlaPolicy:
        return self._policies[level]

    def deadline_for(self, level: SlaLevel, assigned_date: datetime) -> datetime:
        """Deadline of an assignment created at assigned_date under level."""
        return assigned_date + self._policies[level].deadline

    def next_level(self, level: SlaLevel) -> SlaLevel:
        return self._policies[level].escalates_to

    def is_exhausted(self, level: SlaLevel, escalation_level: int) -> bool:
        """
        True when a missed deadline at this level must fail the request:
        only the final rung fails, once escalation_level reaches its max.
        Lower rungs always promote to the next level.
        """
        p = self._policies[level]
        return p.is_final_rung and escalation_level >= p.max_escalations

    @classmethod
    def from_settings(cls, settings: Settings) -> "SlaPolicyTable":
        return cls(
            [
                SlaPolicy(
                    level=SlaLevel.STANDARD,
                    deadline=timedelta(hours=settings.standard_deadline_hours),
                    escalates_to=SlaLevel.PRIORITY,
                    max_escalations=2,
                    urgency_increment=1.0,
                ),
                SlaPolicy(
                    level=SlaLevel.PRIORITY,
                    deadline=timedelta(hours=settings.priority_deadline_hours),
                    escalates_to=SlaLevel.URGENT,
                    max_escalations=2,
                    urgency_increment=2.0,
                ),
                SlaPolicy(
                    level=SlaLevel.URGENT,
                    deadline=timedelta(hours=settings.urgent_deadline_hours),
                    escalates_to=SlaLevel.URGENT,
                    max_escalations=1,
                    urgency_increment=4.0,
                ),
            ]
        )


def default_policy_table() -> SlaPolicyTable:
    """Policy table with the stock deadlines (24h / 8h / 2h)."""
    return SlaPolicyTable.from_settings(Settings(_env_file=None))
