"""Unit tests for the request state machine transitions."""

from datetime import datetime, timedelta, timezone

import pytest

from esla.engine.domain import (
    AssignmentStatus,
    EvidenceInfo,
    RequestStatus,
    SlaLevel,
    Verdict,
)
from esla.engine.errors import InvalidTransition, StaleAssignment, TerminalFailure
from esla.engine.policy import default_policy_table
from esla.engine.state_machine import (
    TimeoutOutcome,
    apply_assignment,
    apply_decision,
    apply_requeue,
    apply_timeout,
    new_request,
)

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
POLICY = default_policy_table()
EVIDENCE = EvidenceInfo(evidence_id="ev-1", challenge_id="ch-run", user_id="user-1")


def _assigned(validator_id="val-a", priority=None):
    request = new_request(EVIDENCE, T0, priority)
    return apply_assignment(request, validator_id, T0, POLICY, attempt=1)


def test_new_request_is_pending():
    request = new_request(EVIDENCE, T0, backup_validator_ids=("val-b",))
    assert request.status == RequestStatus.PENDING
    assert request.current_sla_level == SlaLevel.STANDARD
    assert request.escalation_level == 0
    assert request.remaining_backups == ("val-b",)


def test_first_assignment_sets_original_and_deadline():
    """First assignment records the original validator and the level deadline."""
    request, assignment = _assigned(priority=SlaLevel.PRIORITY)
    assert request.status == RequestStatus.IN_REVIEW
    assert request.original_validator_id == "val-a"
    assert request.assigned_validator_id == "val-a"
    assert request.is_redistributed is False
    assert assignment.status == AssignmentStatus.OPEN
    assert assignment.sla_level == SlaLevel.PRIORITY
    assert assignment.deadline_at == T0 + timedelta(hours=8)


def test_timeout_escalates_one_rung():
    request, assignment = _assigned()
    now = T0 + timedelta(hours=24)
    escalated, timed_out, outcome = apply_timeout(request, assignment, now, POLICY)
    assert outcome == TimeoutOutcome.ESCALATED
    assert escalated.status == RequestStatus.ESCALATED
    assert escalated.escalation_level == 1
    assert escalated.current_sla_level == SlaLevel.PRIORITY
    assert escalated.urgency_boost > request.urgency_boost
    assert escalated.is_redistributed is True
    assert escalated.escalated_date == now
    assert timed_out.status == AssignmentStatus.TIMED_OUT


def test_reassignment_after_escalation_marks_redistributed():
    request, assignment = _assigned()
    escalated, _, _ = apply_timeout(request, assignment, T0 + timedelta(hours=24), POLICY)
    reassigned, second = apply_assignment(
        escalated, "val-b", T0 + timedelta(hours=24), POLICY, attempt=2
    )
    assert reassigned.status == RequestStatus.IN_REVIEW
    assert reassigned.original_validator_id == "val-a"
    assert reassigned.assigned_validator_id == "val-b"
    assert second.sla_level == SlaLevel.PRIORITY
    assert second.deadline_at == T0 + timedelta(hours=32)


def test_timeout_on_final_rung_fails():
    """URGENT with escalation_level >= max fails and cancels the open assignment."""
    request, assignment = _assigned()
    request = request.model_copy(
        update={"current_sla_level": SlaLevel.URGENT, "escalation_level": 2}
    )
    now = T0 + timedelta(hours=30)
    failed, cancelled, outcome = apply_timeout(request, assignment, now, POLICY)
    assert outcome == TimeoutOutcome.FAILED
    assert failed.status == RequestStatus.FAILED
    assert failed.failed_date == now
    assert failed.escalation_level == 2
    assert cancelled.status == AssignmentStatus.CANCELLED


def test_decision_completes_request():
    request, assignment = _assigned()
    now = T0 + timedelta(hours=2)
    completed, closed = apply_decision(request, assignment, Verdict.APPROVED, "looks good", now)
    assert completed.status == RequestStatus.COMPLETED
    assert completed.verdict == Verdict.APPROVED
    assert completed.actual_response_hours == 2.0
    assert closed.status == AssignmentStatus.COMPLETED
    assert closed.comments == "looks good"


def test_decision_on_timed_out_assignment_is_stale():
    request, assignment = _assigned()
    escalated, timed_out, _ = apply_timeout(request, assignment, T0 + timedelta(hours=24), POLICY)
    with pytest.raises(StaleAssignment):
        apply_decision(escalated, timed_out, Verdict.APPROVED, None, T0 + timedelta(hours=25))


def test_completed_request_cannot_escalate():
    request, assignment = _assigned()
    completed, closed = apply_decision(request, assignment, Verdict.REJECTED, None, T0)
    with pytest.raises(InvalidTransition):
        apply_timeout(completed, None, T0 + timedelta(hours=24), POLICY)


def test_failed_request_is_terminal():
    """Nothing but an operator re-queue moves a FAILED request."""
    request, assignment = _assigned()
    failed = request.model_copy(update={"status": RequestStatus.FAILED})
    with pytest.raises(TerminalFailure):
        apply_assignment(failed, "val-b", T0, POLICY, attempt=2)


def test_pending_cannot_complete():
    request = new_request(EVIDENCE, T0)
    _, assignment = _assigned()
    with pytest.raises(InvalidTransition):
        apply_decision(request, assignment, Verdict.APPROVED, None, T0)


def test_requeue_resets_ladder():
    request, _ = _assigned()
    failed = request.model_copy(
        update={
            "status": RequestStatus.FAILED,
            "escalation_level": 2,
            "current_sla_level": SlaLevel.URGENT,
            "failed_date": T0,
        }
    )
    requeued = apply_requeue(failed)
    assert requeued.status == RequestStatus.PENDING
    assert requeued.escalation_level == 0
    assert requeued.current_sla_level == SlaLevel.URGENT
    assert requeued.failed_date is None
    assert requeued.requeue_count == 1


def test_requeue_only_from_failed():
    request, _ = _assigned()
    with pytest.raises(InvalidTransition):
        apply_requeue(request)
