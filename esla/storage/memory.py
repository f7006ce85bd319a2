"""In-memory backends for unit tests - dict-backed fakes."""

import asyncio
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import asynccontextmanager
from datetime import datetime

from esla.engine.domain import (
    AssignmentStatus,
    EvidenceInfo,
    RequestStatus,
    ValidationRequest,
    Validator,
    ValidatorAssignment,
    ValidatorSlaStats,
)
from esla.engine.errors import ConcurrentUpdateConflict, RequestLocked, RequestNotFound


class MemoryRequestTransaction:
    """Staged writes for one request; applied by MemoryAssignmentStore on commit."""

    def __init__(self, request: ValidationRequest, assignments: list[ValidatorAssignment]) -> None:
        self.request = request
        self.assignments = assignments
        self._base_version = request.version

    async def save_request(self, request: ValidationRequest) -> ValidationRequest:
        if request.version != self.request.version:
            raise ConcurrentUpdateConflict(request.id, "stale snapshot version")
        self.request = request.model_copy(update={"version": request.version + 1})
        return self.request

    async def add_assignment(self, assignment: ValidatorAssignment) -> None:
        self.assignments.append(assignment)

    async def update_assignment(self, assignment: ValidatorAssignment) -> None:
        for i, existing in enumerate(self.assignments):
            if existing.id == assignment.id:
                self.assignments[i] = assignment
                return
        raise KeyError(assignment.id)


class MemoryAssignmentStore:
    """Dict-backed IAssignmentStore for unit tests."""

    def __init__(self) -> None:
        self._requests: dict[str, ValidationRequest] = {}
        self._by_evidence: dict[str, str] = {}
        self._assignments: dict[str, list[ValidatorAssignment]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def create_request(self, request: ValidationRequest) -> ValidationRequest:
        existing_id = self._by_evidence.get(request.evidence_id)
        if existing_id is not None:
            return self._requests[existing_id]
        self._requests[request.id] = request
        self._by_evidence[request.evidence_id] = request.id
        self._assignments[request.id] = []
        return request

    async def get_request(self, request_id: str) -> ValidationRequest | None:
        return self._requests.get(request_id)

    async def get_request_by_evidence(self, evidence_id: str) -> ValidationRequest | None:
        request_id = self._by_evidence.get(evidence_id)
        return self._requests.get(request_id) if request_id else None

    async def list_assignments(self, request_id: str) -> list[ValidatorAssignment]:
        return list(self._assignments.get(request_id, []))

    async def list_requests(self, statuses: Iterable[RequestStatus]) -> list[ValidationRequest]:
        wanted = set(statuses)
        return [r for r in self._requests.values() if r.status in wanted]

    async def overdue_request_ids(self, now: datetime) -> list[str]:
        overdue = [
            a
            for assignments in self._assignments.values()
            for a in assignments
            if a.is_overdue(now)
        ]
        overdue.sort(key=lambda a: a.deadline_at)
        return [a.request_id for a in overdue]

    async def waiting_request_ids(self) -> list[str]:
        waiting = (RequestStatus.PENDING, RequestStatus.ESCALATED)
        return [
            r.id
            for r in sorted(self._requests.values(), key=lambda r: r.request_date)
            if r.status in waiting and not any(a.is_open for a in self._assignments[r.id])
        ]

    @asynccontextmanager
    async def transaction(self, request_id: str) -> AsyncIterator[MemoryRequestTransaction]:
        if request_id not in self._requests:
            raise RequestNotFound(request_id)
        lock = self._locks.setdefault(request_id, asyncio.Lock())
        if lock.locked():
            raise RequestLocked(request_id)
        async with lock:
            base = self._requests[request_id]
            txn = MemoryRequestTransaction(base, list(self._assignments[request_id]))
            yield txn
            if self._requests[request_id].version != base.version:
                raise ConcurrentUpdateConflict(request_id, "version changed during transaction")
            self._requests[request_id] = txn.request
            self._assignments[request_id] = txn.assignments

    # Helpers for the in-memory registry
    def open_count(self, validator_id: str) -> int:
        return sum(
            1
            for assignments in self._assignments.values()
            for a in assignments
            if a.validator_id == validator_id and a.status == AssignmentStatus.OPEN
        )


class MemoryValidatorRegistry:
    """Dict-backed IValidatorRegistry; load is derived from the memory store."""

    def __init__(self, store: MemoryAssignmentStore, validators: Iterable[Validator] = ()) -> None:
        self._store = store
        self._validators: dict[str, Validator] = {v.id: v for v in validators}

    def put(self, validator: Validator) -> None:
        self._validators[validator.id] = validator

    def deactivate(self, validator_id: str) -> None:
        self._validators[validator_id] = self._validators[validator_id].model_copy(
            update={"is_active": False}
        )

    async def list_active(self, specialization: str | None) -> list[Validator]:
        return [
            v for v in self._validators.values() if v.is_active and v.matches(specialization)
        ]

    async def get(self, validator_id: str) -> Validator | None:
        return self._validators.get(validator_id)

    async def open_assignment_count(self, validator_id: str) -> int:
        return self._store.open_count(validator_id)

    async def update_stats(
        self,
        validator_id: str,
        apply: Callable[[ValidatorSlaStats], ValidatorSlaStats],
    ) -> ValidatorSlaStats | None:
        validator = self._validators.get(validator_id)
        if validator is None:
            return None
        stats = apply(validator.stats)
        self._validators[validator_id] = validator.model_copy(update={"stats": stats})
        return stats


class MemoryEvidenceCatalog:
    """Dict-backed IEvidenceCatalog for unit tests."""

    def __init__(self, items: Iterable[EvidenceInfo] = ()) -> None:
        self._items: dict[str, EvidenceInfo] = {e.evidence_id: e for e in items}

    def put(self, evidence: EvidenceInfo) -> None:
        self._items[evidence.evidence_id] = evidence

    async def lookup(self, evidence_id: str) -> EvidenceInfo | None:
        return self._items.get(evidence_id)
