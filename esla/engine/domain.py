"""Immutable domain snapshots for the validation engine.

Every entity is a frozen pydantic model. State changes never mutate a
snapshot: the transition functions in ``esla.engine.state_machine`` return
new snapshots via ``model_copy(update=...)`` and the stores persist them.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from esla.engine.timeutil import ensure_utc


class SlaLevel(str, Enum):
    """Priority tier governing the response deadline."""

    STANDARD = "STANDARD"
    PRIORITY = "PRIORITY"
    URGENT = "URGENT"

    @property
    def rank(self) -> int:
        return list(SlaLevel).index(self)


class RequestStatus(str, Enum):
    PENDING = "PENDING"
    IN_REVIEW = "IN_REVIEW"
    ESCALATED = "ESCALATED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (RequestStatus.COMPLETED, RequestStatus.FAILED)


class AssignmentStatus(str, Enum):
    OPEN = "OPEN"
    COMPLETED = "COMPLETED"
    TIMED_OUT = "TIMED_OUT"
    CANCELLED = "CANCELLED"


class Verdict(str, Enum):
    """Validator decision on a piece of evidence."""

    APPROVED = "APPROVED"
    APPROVED_WITH_CONDITIONS = "APPROVED_WITH_CONDITIONS"
    REJECTED = "REJECTED"
    NEEDS_REVISION = "NEEDS_REVISION"

    @property
    def is_approved(self) -> bool:
        return self in (Verdict.APPROVED, Verdict.APPROVED_WITH_CONDITIONS)


class _Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)


class ValidationRequest(_Snapshot):
    """One request per evidence item requiring validation."""

    id: str
    evidence_id: str
    user_id: str
    challenge_id: str
    required_specialization: str | None = None
    declared_priority: SlaLevel = SlaLevel.STANDARD
    request_date: datetime

    assigned_validator_id: str | None = None
    original_validator_id: str | None = None
    backup_validator_ids: tuple[str, ...] = ()
    backup_cursor: int = 0

    current_sla_level: SlaLevel = SlaLevel.STANDARD
    escalation_level: int = Field(default=0, ge=0)
    is_redistributed: bool = False
    urgency_boost: float = Field(default=0.0, ge=0.0)
    status: RequestStatus = RequestStatus.PENDING
    escalated_date: datetime | None = None

    verdict: Verdict | None = None
    completed_date: datetime | None = None
    actual_response_hours: float | None = None
    failed_date: datetime | None = None
    requeue_count: int = 0

    version: int = 1

    @field_validator("request_date", "escalated_date", "completed_date", "failed_date")
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v)

    @property
    def remaining_backups(self) -> tuple[str, ...]:
        return self.backup_validator_ids[self.backup_cursor:]

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


class ValidatorAssignment(_Snapshot):
    """One attempt by one validator on one request."""

    id: str
    request_id: str
    validator_id: str
    evidence_id: str
    attempt: int
    sla_level: SlaLevel
    assigned_date: datetime
    deadline_at: datetime
    status: AssignmentStatus = AssignmentStatus.OPEN
    verdict: Verdict | None = None
    comments: str | None = None
    completed_date: datetime | None = None

    @field_validator("assigned_date", "deadline_at", "completed_date")
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v)

    @property
    def is_open(self) -> bool:
        return self.status == AssignmentStatus.OPEN

    def is_overdue(self, now: datetime) -> bool:
        return self.is_open and self.deadline_at <= now


class ValidatorSlaStats(_Snapshot):
    """Response-time track record of one validator."""

    total_validations: int = 0
    optimal_validations: int = 0
    standard_validations: int = 0
    delayed_validations: int = 0
    timeout_validations: int = 0
    average_response_hours: float = 0.0
    current_streak: int = 0
    sla_score: int = 100
    last_activity_date: datetime | None = None


class Validator(_Snapshot):
    id: str
    is_active: bool = True
    specializations: tuple[str, ...] = ()
    rating: float = 0.0
    max_open_assignments: int | None = None
    stats: ValidatorSlaStats = Field(default_factory=ValidatorSlaStats)

    def matches(self, specialization: str | None) -> bool:
        return specialization is None or specialization in self.specializations

    def has_capacity(self, open_count: int) -> bool:
        return self.max_open_assignments is None or open_count < self.max_open_assignments


class EvidenceInfo(_Snapshot):
    """Evidence metadata handed over by the evidence catalog."""

    evidence_id: str
    challenge_id: str
    user_id: str
    required_specialization: str | None = None
    priority: SlaLevel = SlaLevel.STANDARD


class RequestView(_Snapshot):
    """A request together with its full assignment history."""

    request: ValidationRequest
    assignments: tuple[ValidatorAssignment, ...] = ()

    @property
    def open_assignment(self) -> ValidatorAssignment | None:
        return next((a for a in self.assignments if a.is_open), None)


class DecisionOutcome(str, Enum):
    COMPLETED = "COMPLETED"
    STALE = "STALE"


class DecisionResult(_Snapshot):
    outcome: DecisionOutcome
    request_id: str
    evidence_id: str
    validator_id: str
    request_status: RequestStatus
    message: str = ""


class SweepReport(BaseModel):
    """Counters for one Escalation Clock sweep."""

    started_at: datetime
    examined: int = 0
    escalated: int = 0
    reassigned: int = 0
    failed: int = 0
    unassigned: int = 0
    skipped: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.escalated or self.reassigned or self.failed)
