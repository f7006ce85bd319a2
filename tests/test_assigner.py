"""Unit tests for validator selection."""

from datetime import datetime, timedelta, timezone

import pytest

from esla.engine.assigner import Assigner, rank_candidates
from esla.engine.domain import (
    AssignmentStatus,
    EvidenceInfo,
    RequestStatus,
    Validator,
)
from esla.engine.errors import NoEligibleValidator
from esla.engine.state_machine import apply_timeout, new_request

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


async def _create(store, evidence_id="ev-1", specialization="fitness", backups=()):
    evidence = EvidenceInfo(
        evidence_id=evidence_id,
        challenge_id="ch-run",
        user_id="user-1",
        required_specialization=specialization,
    )
    return await store.create_request(new_request(evidence, T0, backup_validator_ids=backups))


async def _assign(store, assigner, request_id, now=T0, reassignment=False):
    async with store.transaction(request_id) as txn:
        return await assigner.assign(txn, now, reassignment=reassignment)


async def _escalate(store, policy, request_id, now):
    """Time out the open assignment without reassigning."""
    async with store.transaction(request_id) as txn:
        current = next(a for a in txn.assignments if a.is_open)
        updated, closed, _ = apply_timeout(txn.request, current, now, policy)
        await txn.update_assignment(closed)
        await txn.save_request(updated)


def test_rank_candidates_orders_by_load_then_rating_then_id():
    a = Validator(id="a", rating=4.0)
    b = Validator(id="b", rating=5.0)
    c = Validator(id="c", rating=5.0)
    ranked = rank_candidates([(a, 0), (c, 1), (b, 1)])
    assert [v.id for v, _ in ranked] == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_picks_best_rated_matching_validator(store, registry, policy):
    """With equal load the highest rating wins; non-matching specializations are ignored."""
    request = await _create(store)
    assignment = await _assign(store, Assigner(registry, policy), request.id)
    assert assignment.validator_id == "val-alice"
    saved = await store.get_request(request.id)
    assert saved.status == RequestStatus.IN_REVIEW
    assert saved.assigned_validator_id == "val-alice"


@pytest.mark.asyncio
async def test_prefers_least_loaded_validator(store, registry, policy):
    assigner = Assigner(registry, policy)
    first = await _create(store, "ev-1")
    second = await _create(store, "ev-2")
    a1 = await _assign(store, assigner, first.id)
    a2 = await _assign(store, assigner, second.id)
    assert a1.validator_id == "val-alice"
    assert a2.validator_id == "val-bob"


@pytest.mark.asyncio
async def test_capacity_and_inactive_validators_skipped(store, registry, policy):
    registry.put(Validator(id="val-alice", specializations=("fitness",), rating=4.8, max_open_assignments=1))
    registry.deactivate("val-bob")
    assigner = Assigner(registry, policy)
    first = await _create(store, "ev-1")
    second = await _create(store, "ev-2")
    await _assign(store, assigner, first.id)
    a2 = await _assign(store, assigner, second.id)
    assert a2.validator_id == "val-carol"


@pytest.mark.asyncio
async def test_no_eligible_validator_leaves_request_unchanged(store, registry, policy):
    """Zero active validators for the specialization: error, status unchanged."""
    request = await _create(store, specialization="yoga")
    with pytest.raises(NoEligibleValidator):
        await _assign(store, Assigner(registry, policy), request.id)
    saved = await store.get_request(request.id)
    assert saved.status == RequestStatus.PENDING
    assert await store.list_assignments(request.id) == []


@pytest.mark.asyncio
async def test_reassignment_consumes_backups_in_order(store, registry, policy):
    """Backups are tried front to back; an ineligible one is skipped and consumed."""
    registry.deactivate("val-bob")
    assigner = Assigner(registry, policy)
    request = await _create(store, backups=("val-bob", "val-carol"))
    await _assign(store, assigner, request.id)
    await _escalate(store, policy, request.id, T0 + timedelta(hours=24))

    second = await _assign(store, assigner, request.id, T0 + timedelta(hours=24), reassignment=True)
    assert second.validator_id == "val-carol"
    assert second.attempt == 2
    saved = await store.get_request(request.id)
    assert saved.backup_cursor == 2
    assert saved.remaining_backups == ()
    assert saved.is_redistributed is True


@pytest.mark.asyncio
async def test_timed_out_validator_excluded_from_reassignment(store, registry, policy):
    registry.deactivate("val-bob")
    registry.deactivate("val-carol")
    assigner = Assigner(registry, policy)
    request = await _create(store)
    await _assign(store, assigner, request.id)
    await _escalate(store, policy, request.id, T0 + timedelta(hours=24))

    with pytest.raises(NoEligibleValidator):
        await _assign(store, assigner, request.id, T0 + timedelta(hours=24), reassignment=True)
    saved = await store.get_request(request.id)
    assert saved.status == RequestStatus.ESCALATED


@pytest.mark.asyncio
async def test_timed_out_validator_allowed_when_configured(store, registry, policy):
    registry.deactivate("val-bob")
    registry.deactivate("val-carol")
    assigner = Assigner(registry, policy, allow_reassign_to_timed_out=True)
    request = await _create(store)
    await _assign(store, assigner, request.id)
    await _escalate(store, policy, request.id, T0 + timedelta(hours=24))

    second = await _assign(store, assigner, request.id, T0 + timedelta(hours=24), reassignment=True)
    assert second.validator_id == "val-alice"
    statuses = [a.status for a in await store.list_assignments(request.id)]
    assert statuses == [AssignmentStatus.TIMED_OUT, AssignmentStatus.OPEN]
