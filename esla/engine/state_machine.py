"""Escalation state machine for ValidationRequest.

PENDING -> IN_REVIEW -> {COMPLETED, ESCALATED}
ESCALATED -> IN_REVIEW | ESCALATED (missed again while unassigned)
IN_REVIEW | ESCALATED -> FAILED

Every function here is pure: it takes snapshots and returns new snapshots.
Persisting them (and the per-request locking around it) is the caller's job.
"""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from esla.engine.domain import (
    AssignmentStatus,
    EvidenceInfo,
    RequestStatus,
    SlaLevel,
    ValidationRequest,
    ValidatorAssignment,
    Verdict,
)
from esla.engine.errors import InvalidTransition, StaleAssignment, TerminalFailure
from esla.engine.policy import SlaPolicyTable
from esla.engine.timeutil import hours_between

ALLOWED_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({RequestStatus.IN_REVIEW}),
    RequestStatus.IN_REVIEW: frozenset(
        {RequestStatus.COMPLETED, RequestStatus.ESCALATED, RequestStatus.FAILED}
    ),
    RequestStatus.ESCALATED: frozenset(
        {RequestStatus.IN_REVIEW, RequestStatus.ESCALATED, RequestStatus.FAILED}
    ),
    RequestStatus.COMPLETED: frozenset(),
    RequestStatus.FAILED: frozenset(),
}


class TimeoutOutcome(str, Enum):
    ESCALATED = "ESCALATED"
    FAILED = "FAILED"


def _check(request: ValidationRequest, target: RequestStatus) -> None:
    if request.status == RequestStatus.FAILED:
        raise TerminalFailure(request.id)
    if target not in ALLOWED_TRANSITIONS[request.status]:
        raise InvalidTransition(request.id, request.status.value, target.value)


def new_request(
    evidence: EvidenceInfo,
    now: datetime,
    priority: SlaLevel | None = None,
    backup_validator_ids: tuple[str, ...] = (),
    request_id: str | None = None,
) -> ValidationRequest:
    """Fresh PENDING request for an evidence item."""
    declared = priority or evidence.priority
    return ValidationRequest(
        id=request_id or str(uuid4()),
        evidence_id=evidence.evidence_id,
        user_id=evidence.user_id,
        challenge_id=evidence.challenge_id,
        required_specialization=evidence.required_specialization,
        declared_priority=declared,
        request_date=now,
        backup_validator_ids=tuple(backup_validator_ids),
        current_sla_level=declared,
        status=RequestStatus.PENDING,
    )


def apply_assignment(
    request: ValidationRequest,
    validator_id: str,
    now: datetime,
    policy: SlaPolicyTable,
    attempt: int,
    backup_cursor: int | None = None,
) -> tuple[ValidationRequest, ValidatorAssignment]:
    """Assign validator_id; returns the updated request and the new OPEN assignment."""
    _check(request, RequestStatus.IN_REVIEW)

    first = request.original_validator_id is None
    level = request.current_sla_level
    if first and request.declared_priority.rank > level.rank:
        level = request.declared_priority
    original = validator_id if first else request.original_validator_id

    updated = request.model_copy(
        update={
            "status": RequestStatus.IN_REVIEW,
            "assigned_validator_id": validator_id,
            "original_validator_id": original,
            "current_sla_level": level,
            "is_redistributed": request.is_redistributed or validator_id != original,
            "backup_cursor": request.backup_cursor if backup_cursor is None else backup_cursor,
        }
    )
    assignment = ValidatorAssignment(
        id=str(uuid4()),
        request_id=request.id,
        validator_id=validator_id,
        evidence_id=request.evidence_id,
        attempt=attempt,
        sla_level=level,
        assigned_date=now,
        deadline_at=policy.deadline_for(level, now),
    )
    return updated, assignment


def apply_timeout(
    request: ValidationRequest,
    assignment: ValidatorAssignment | None,
    now: datetime,
    policy: SlaPolicyTable,
) -> tuple[ValidationRequest, ValidatorAssignment | None, TimeoutOutcome]:
    """
    Missed deadline. Escalates one rung, or fails the request when the
    final rung is exhausted. assignment is the overdue OPEN assignment, or
    None for an ESCALATED request that never got a new assignee.
    """
    if policy.is_exhausted(request.current_sla_level, request.escalation_level):
        _check(request, RequestStatus.FAILED)
        failed = request.model_copy(
            update={"status": RequestStatus.FAILED, "failed_date": now}
        )
        cancelled = None
        if assignment is not None:
            cancelled = assignment.model_copy(
                update={"status": AssignmentStatus.CANCELLED, "completed_date": now}
            )
        return failed, cancelled, TimeoutOutcome.FAILED

    _check(request, RequestStatus.ESCALATED)
    next_level = policy.next_level(request.current_sla_level)
    escalated = request.model_copy(
        update={
            "status": RequestStatus.ESCALATED,
            "escalation_level": request.escalation_level + 1,
            "current_sla_level": next_level,
            "urgency_boost": request.urgency_boost + policy.policy(next_level).urgency_increment,
            "is_redistributed": True,
            "escalated_date": now,
        }
    )
    timed_out = None
    if assignment is not None:
        timed_out = assignment.model_copy(update={"status": AssignmentStatus.TIMED_OUT})
    return escalated, timed_out, TimeoutOutcome.ESCALATED


def apply_decision(
    request: ValidationRequest,
    assignment: ValidatorAssignment,
    verdict: Verdict,
    comments: str | None,
    now: datetime,
) -> tuple[ValidationRequest, ValidatorAssignment]:
    """Finalize the request with the verdict from its OPEN assignment."""
    if not assignment.is_open:
        raise StaleAssignment(assignment.evidence_id, assignment.validator_id, assignment.status.value)
    _check(request, RequestStatus.COMPLETED)

    completed = request.model_copy(
        update={
            "status": RequestStatus.COMPLETED,
            "verdict": verdict,
            "completed_date": now,
            "actual_response_hours": hours_between(request.request_date, now),
        }
    )
    closed = assignment.model_copy(
        update={
            "status": AssignmentStatus.COMPLETED,
            "verdict": verdict,
            "comments": comments,
            "completed_date": now,
        }
    )
    return completed, closed


def apply_requeue(request: ValidationRequest) -> ValidationRequest:
    """Operator re-queue of a FAILED request: back to PENDING, ladder reset."""
    if request.status != RequestStatus.FAILED:
        raise InvalidTransition(request.id, request.status.value, RequestStatus.PENDING.value)
    return request.model_copy(
        update={
            "status": RequestStatus.PENDING,
            "escalation_level": 0,
            "escalated_date": None,
            "failed_date": None,
            "requeue_count": request.requeue_count + 1,
        }
    )
