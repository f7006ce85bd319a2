"""ValidationService - exposed operations over the engine components.

All collaborators are injected; nothing here reaches for module-level state.
"""

import logging
from datetime import datetime, timedelta

from esla.config import Settings
from esla.engine.assigner import Assigner
from esla.engine.clock import EscalationClock
from esla.engine.domain import (
    DecisionOutcome,
    DecisionResult,
    RequestStatus,
    RequestView,
    SlaLevel,
    SweepReport,
    ValidationRequest,
    Verdict,
)
from esla.engine.errors import EvidenceNotFound, NoEligibleValidator, RequestNotFound, StaleAssignment
from esla.engine.intake import DecisionIntake
from esla.engine.policy import SlaPolicyTable
from esla.engine.state_machine import apply_requeue, new_request
from esla.engine.timeutil import utcnow
from esla.storage.protocols import IAssignmentStore, IEvidenceCatalog, IValidatorRegistry

logger = logging.getLogger(__name__)


class ValidationService:
    """Facade used by the HTTP layer and scripts."""

    def __init__(
        self,
        store: IAssignmentStore,
        registry: IValidatorRegistry,
        catalog: IEvidenceCatalog,
        policy: SlaPolicyTable,
        allow_reassign_to_timed_out: bool = False,
        long_escalation: timedelta = timedelta(hours=12),
        sweep_interval_seconds: float = 60.0,
        sweep_concurrency: int = 8,
    ) -> None:
        self.store = store
        self.registry = registry
        self.catalog = catalog
        self.policy = policy
        self.long_escalation = long_escalation
        self.assigner = Assigner(registry, policy, allow_reassign_to_timed_out)
        self.clock = EscalationClock(
            store,
            registry,
            self.assigner,
            policy,
            interval_seconds=sweep_interval_seconds,
            concurrency=sweep_concurrency,
        )
        self.intake = DecisionIntake(store, registry)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: IAssignmentStore,
        registry: IValidatorRegistry,
        catalog: IEvidenceCatalog,
    ) -> "ValidationService":
        return cls(
            store,
            registry,
            catalog,
            SlaPolicyTable.from_settings(settings),
            allow_reassign_to_timed_out=settings.allow_reassign_to_timed_out,
            long_escalation=timedelta(hours=settings.long_escalation_hours),
            sweep_interval_seconds=settings.sweep_interval_seconds,
            sweep_concurrency=settings.sweep_concurrency,
        )

    async def submit_for_validation(
        self,
        evidence_id: str,
        user_id: str,
        challenge_id: str,
        priority: SlaLevel | None = None,
        backup_validator_ids: tuple[str, ...] = (),
        now: datetime | None = None,
    ) -> RequestView:
        """
        Create the validation request for an evidence item and try the first
        assignment right away. Submitting the same evidence twice returns the
        existing request.
        """
        now = now or utcnow()
        existing = await self.store.get_request_by_evidence(evidence_id)
        if existing is not None:
            return await self.get_status(existing.id)

        evidence = await self.catalog.lookup(evidence_id)
        if evidence is None:
            raise EvidenceNotFound(f"Evidence {evidence_id} not found")
        if evidence.user_id != user_id or evidence.challenge_id != challenge_id:
            raise EvidenceNotFound(
                f"Evidence {evidence_id} does not belong to user {user_id} / challenge {challenge_id}"
            )

        request = new_request(evidence, now, priority, tuple(backup_validator_ids))
        created = await self.store.create_request(request)
        if created.id != request.id:
            return await self.get_status(created.id)
        logger.info(
            "Request %s created for evidence %s (%s)",
            created.id,
            evidence_id,
            created.declared_priority.value,
        )

        async with self.store.transaction(created.id) as txn:
            try:
                await self.assigner.assign(txn, now)
            except NoEligibleValidator as exc:
                logger.warning("%s; request stays PENDING until the next sweep", exc)
        return await self.get_status(created.id)

    async def get_status(self, request_id: str) -> RequestView:
        request = await self.store.get_request(request_id)
        if request is None:
            raise RequestNotFound(f"Validation request {request_id} not found")
        assignments = await self.store.list_assignments(request_id)
        return RequestView(request=request, assignments=tuple(assignments))

    async def record_decision(
        self,
        evidence_id: str,
        validator_id: str,
        verdict: Verdict,
        comments: str | None = None,
        now: datetime | None = None,
    ) -> DecisionResult:
        """Decision Intake; a stale verdict becomes an informational STALE result."""
        try:
            return await self.intake.record_decision(evidence_id, validator_id, verdict, comments, now)
        except StaleAssignment as exc:
            request = await self.store.get_request_by_evidence(evidence_id)
            return DecisionResult(
                outcome=DecisionOutcome.STALE,
                request_id=request.id,
                evidence_id=evidence_id,
                validator_id=validator_id,
                request_status=request.status,
                message=str(exc),
            )

    async def operator_queue(self, now: datetime | None = None) -> list[ValidationRequest]:
        """FAILED and long-ESCALATED requests, most urgent first."""
        now = now or utcnow()
        cutoff = now - self.long_escalation
        candidates = await self.store.list_requests(
            (RequestStatus.FAILED, RequestStatus.ESCALATED)
        )
        queue = [
            r
            for r in candidates
            if r.status == RequestStatus.FAILED
            or (r.escalated_date is not None and r.escalated_date <= cutoff)
        ]
        queue.sort(key=lambda r: (-r.urgency_boost, r.request_date))
        return queue

    async def requeue(self, request_id: str, now: datetime | None = None) -> RequestView:
        """Manual operator re-queue of a FAILED request."""
        now = now or utcnow()
        async with self.store.transaction(request_id) as txn:
            requeued = await txn.save_request(apply_requeue(txn.request))
            logger.info(
                "Request %s re-queued by operator (requeue #%d)", request_id, requeued.requeue_count
            )
            try:
                await self.assigner.assign(txn, now, reassignment=True)
            except NoEligibleValidator as exc:
                logger.warning("%s; re-queued request stays PENDING", exc)
        return await self.get_status(request_id)

    async def sweep(self, now: datetime | None = None) -> SweepReport:
        return await self.clock.sweep(now)
