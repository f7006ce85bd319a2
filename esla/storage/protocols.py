"""Protocol interfaces for the engine's collaborators.

The engine only talks to these Protocols; the SQLAlchemy repositories and
the in-memory backends both satisfy them structurally.
"""

from collections.abc import Callable, Iterable
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Protocol, runtime_checkable

from esla.engine.domain import (
    EvidenceInfo,
    RequestStatus,
    ValidationRequest,
    Validator,
    ValidatorAssignment,
    ValidatorSlaStats,
)


# ---------------------------------------------------------------------------
# Assignment Store
# ---------------------------------------------------------------------------

@runtime_checkable
class IRequestTransaction(Protocol):
    """Exclusive read-modify-write scope over one ValidationRequest.

    `request` and `assignments` reflect staged writes. Writes are committed
    when the owning context manager exits cleanly.
    """

    request: ValidationRequest
    assignments: list[ValidatorAssignment]

    async def save_request(self, request: ValidationRequest) -> ValidationRequest: ...

    async def add_assignment(self, assignment: ValidatorAssignment) -> None: ...

    async def update_assignment(self, assignment: ValidatorAssignment) -> None: ...


@runtime_checkable
class IAssignmentStore(Protocol):
    """Durable ValidationRequest / ValidatorAssignment storage."""

    async def create_request(self, request: ValidationRequest) -> ValidationRequest: ...

    async def get_request(self, request_id: str) -> ValidationRequest | None: ...

    async def get_request_by_evidence(self, evidence_id: str) -> ValidationRequest | None: ...

    async def list_assignments(self, request_id: str) -> list[ValidatorAssignment]: ...

    async def list_requests(self, statuses: Iterable[RequestStatus]) -> list[ValidationRequest]: ...

    async def overdue_request_ids(self, now: datetime) -> list[str]: ...

    async def waiting_request_ids(self) -> list[str]: ...

    def transaction(self, request_id: str) -> AbstractAsyncContextManager[IRequestTransaction]: ...


# ---------------------------------------------------------------------------
# Validator Registry
# ---------------------------------------------------------------------------

@runtime_checkable
class IValidatorRegistry(Protocol):
    """Validator eligibility, load and SLA statistics."""

    async def list_active(self, specialization: str | None) -> list[Validator]: ...

    async def get(self, validator_id: str) -> Validator | None: ...

    async def open_assignment_count(self, validator_id: str) -> int: ...

    async def update_stats(
        self,
        validator_id: str,
        apply: Callable[[ValidatorSlaStats], ValidatorSlaStats],
    ) -> ValidatorSlaStats | None:
        """Atomically replace the stats with apply(current); None for unknown ids."""
        ...


# ---------------------------------------------------------------------------
# Evidence Catalog
# ---------------------------------------------------------------------------

@runtime_checkable
class IEvidenceCatalog(Protocol):
    """Read-only evidence metadata lookup."""

    async def lookup(self, evidence_id: str) -> EvidenceInfo | None: ...
