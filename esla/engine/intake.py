"""Decision Intake - the only path that completes a validation request."""

import logging
from datetime import datetime

from esla.engine import sla_stats
from esla.engine.domain import (
    DecisionOutcome,
    DecisionResult,
    ValidatorAssignment,
    Verdict,
)
from esla.engine.errors import AssignmentNotFound, RequestNotFound, StaleAssignment
from esla.engine.state_machine import apply_decision
from esla.engine.timeutil import hours_between, utcnow
from esla.storage.protocols import IAssignmentStore, IValidatorRegistry

logger = logging.getLogger(__name__)


class DecisionIntake:
    """Accepts validator verdicts and finalizes requests."""

    def __init__(self, store: IAssignmentStore, registry: IValidatorRegistry) -> None:
        self._store = store
        self._registry = registry

    async def record_decision(
        self,
        evidence_id: str,
        validator_id: str,
        verdict: Verdict,
        comments: str | None = None,
        now: datetime | None = None,
    ) -> DecisionResult:
        """
        Record a verdict from validator_id on evidence_id.

        Raises RequestNotFound / AssignmentNotFound for unknown targets,
        StaleAssignment when the validator's assignment already timed out or
        was cancelled (request untouched), and RequestLocked when another
        worker holds the request.
        """
        now = now or utcnow()
        request = await self._store.get_request_by_evidence(evidence_id)
        if request is None:
            raise RequestNotFound(f"No validation request for evidence {evidence_id}")

        async with self._store.transaction(request.id) as txn:
            assignment = self._latest_for(txn.assignments, validator_id)
            if assignment is None:
                raise AssignmentNotFound(
                    f"Validator {validator_id} was never assigned to evidence {evidence_id}"
                )
            if not assignment.is_open:
                logger.warning(
                    "Stale decision %s from %s on evidence %s (assignment %s); request %s is %s",
                    verdict.value,
                    validator_id,
                    evidence_id,
                    assignment.status.value,
                    txn.request.id,
                    txn.request.status.value,
                )
                raise StaleAssignment(evidence_id, validator_id, assignment.status.value)

            completed, closed = apply_decision(txn.request, assignment, verdict, comments, now)
            await txn.update_assignment(closed)
            completed = await txn.save_request(completed)

        logger.info(
            "Request %s COMPLETED by %s: %s after %.2fh",
            completed.id,
            validator_id,
            verdict.value,
            completed.actual_response_hours,
        )
        await self._record_response(validator_id, hours_between(assignment.assigned_date, now), now)
        return DecisionResult(
            outcome=DecisionOutcome.COMPLETED,
            request_id=completed.id,
            evidence_id=evidence_id,
            validator_id=validator_id,
            request_status=completed.status,
        )

    @staticmethod
    def _latest_for(
        assignments: list[ValidatorAssignment], validator_id: str
    ) -> ValidatorAssignment | None:
        mine = [a for a in assignments if a.validator_id == validator_id]
        if not mine:
            return None
        open_ones = [a for a in mine if a.is_open]
        return open_ones[0] if open_ones else max(mine, key=lambda a: a.attempt)

    async def _record_response(self, validator_id: str, hours: float, now: datetime) -> None:
        await self._registry.update_stats(
            validator_id, lambda stats: sla_stats.record_response(stats, hours, now)
        )
