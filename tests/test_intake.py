"""Decision intake: completing requests and stale verdicts."""

from datetime import datetime, timedelta, timezone

import pytest

from esla.engine.domain import AssignmentStatus, DecisionOutcome, RequestStatus, Verdict
from esla.engine.errors import (
    AssignmentNotFound,
    ConcurrentUpdateConflict,
    RequestNotFound,
    StaleAssignment,
)

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def at(h: float) -> datetime:
    return T0 + timedelta(hours=h)


@pytest.mark.asyncio
async def test_decision_within_deadline_completes(service, registry):
    """Verdict after 2h on a STANDARD request: COMPLETED, ~2 response hours."""
    view = await service.submit_for_validation("ev-1", "user-1", "ch-run", now=T0)
    result = await service.record_decision(
        "ev-1", "val-alice", Verdict.APPROVED, "photo matches", now=at(2)
    )
    assert result.outcome == DecisionOutcome.COMPLETED
    assert result.request_status == RequestStatus.COMPLETED

    view = await service.get_status(view.request.id)
    assert view.request.status == RequestStatus.COMPLETED
    assert view.request.verdict == Verdict.APPROVED
    assert view.request.actual_response_hours == pytest.approx(2.0)
    assert view.assignments[0].status == AssignmentStatus.COMPLETED
    assert view.assignments[0].comments == "photo matches"

    alice = await registry.get("val-alice")
    assert alice.stats.total_validations == 1
    assert alice.stats.optimal_validations == 1
    assert alice.stats.current_streak == 1


@pytest.mark.asyncio
async def test_decision_on_timed_out_assignment_is_stale(service):
    """The original validator answers after escalation: request unchanged."""
    view = await service.submit_for_validation("ev-1", "user-1", "ch-run", now=T0)
    await service.sweep(at(24))
    before = await service.get_status(view.request.id)

    result = await service.record_decision("ev-1", "val-alice", Verdict.APPROVED, now=at(25))
    assert result.outcome == DecisionOutcome.STALE
    assert result.request_status == RequestStatus.IN_REVIEW
    assert "TIMED_OUT" in result.message
    assert await service.get_status(view.request.id) == before


@pytest.mark.asyncio
async def test_intake_raises_stale_assignment(service):
    await service.submit_for_validation("ev-1", "user-1", "ch-run", now=T0)
    await service.sweep(at(24))
    with pytest.raises(StaleAssignment):
        await service.intake.record_decision("ev-1", "val-alice", Verdict.REJECTED, now=at(25))


@pytest.mark.asyncio
async def test_reassigned_validator_can_complete(service):
    view = await service.submit_for_validation("ev-1", "user-1", "ch-run", now=T0)
    await service.sweep(at(24))
    result = await service.record_decision("ev-1", "val-bob", Verdict.NEEDS_REVISION, now=at(26))
    assert result.outcome == DecisionOutcome.COMPLETED
    view = await service.get_status(view.request.id)
    assert view.request.status == RequestStatus.COMPLETED
    assert view.request.actual_response_hours == pytest.approx(26.0)
    assert [a.status for a in view.assignments] == [AssignmentStatus.TIMED_OUT, AssignmentStatus.COMPLETED]


@pytest.mark.asyncio
async def test_late_verdict_before_sweep_is_accepted(service):
    """Past the deadline but before the sweep noticed: the assignment is still open."""
    await service.submit_for_validation("ev-1", "user-1", "ch-run", now=T0)
    result = await service.record_decision("ev-1", "val-alice", Verdict.APPROVED, now=at(30))
    assert result.outcome == DecisionOutcome.COMPLETED
    report = await service.sweep(at(30))
    assert report.escalated == 0


@pytest.mark.asyncio
async def test_second_decision_is_stale(service):
    await service.submit_for_validation("ev-1", "user-1", "ch-run", now=T0)
    await service.record_decision("ev-1", "val-alice", Verdict.APPROVED, now=at(1))
    result = await service.record_decision("ev-1", "val-alice", Verdict.REJECTED, now=at(2))
    assert result.outcome == DecisionOutcome.STALE
    assert result.request_status == RequestStatus.COMPLETED


@pytest.mark.asyncio
async def test_unknown_evidence_or_validator(service):
    await service.submit_for_validation("ev-1", "user-1", "ch-run", now=T0)
    with pytest.raises(RequestNotFound):
        await service.record_decision("ev-missing", "val-alice", Verdict.APPROVED)
    with pytest.raises(AssignmentNotFound):
        await service.record_decision("ev-1", "val-dave", Verdict.APPROVED)


@pytest.mark.asyncio
async def test_decision_on_locked_request_is_a_conflict(service, store, registry):
    """While another worker holds the request, the verdict is refused and nothing changes."""
    view = await service.submit_for_validation("ev-1", "user-1", "ch-run", now=T0)
    async with store.transaction(view.request.id):
        with pytest.raises(ConcurrentUpdateConflict):
            await service.record_decision("ev-1", "val-alice", Verdict.APPROVED, now=at(1))

    after = await service.get_status(view.request.id)
    assert after == view
    assert (await registry.get("val-alice")).stats.total_validations == 0

    # Retried once the lock is released
    result = await service.record_decision("ev-1", "val-alice", Verdict.APPROVED, now=at(1))
    assert result.outcome == DecisionOutcome.COMPLETED
