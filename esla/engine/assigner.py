"""Assigner - picks the validator for a request and stages the assignment."""

import logging
from datetime import datetime

from esla.engine.domain import AssignmentStatus, Validator, ValidatorAssignment
from esla.engine.errors import NoEligibleValidator
from esla.engine.policy import SlaPolicyTable
from esla.engine.state_machine import apply_assignment
from esla.storage.protocols import IRequestTransaction, IValidatorRegistry

logger = logging.getLogger(__name__)


def rank_candidates(candidates: list[tuple[Validator, int]]) -> list[tuple[Validator, int]]:
    """
    Order (validator, open_count) pairs: least loaded first, then highest
    rating, then lowest id as the deterministic tie-break.
    """
    return sorted(candidates, key=lambda c: (c[1], -c[0].rating, c[0].id))


class Assigner:
    """Selects a validator (backup first on re-assignment, then registry)."""

    def __init__(
        self,
        registry: IValidatorRegistry,
        policy: SlaPolicyTable,
        allow_reassign_to_timed_out: bool = False,
    ) -> None:
        self._registry = registry
        self._policy = policy
        self._allow_reassign_to_timed_out = allow_reassign_to_timed_out

    def _excluded(self, assignments: list[ValidatorAssignment]) -> set[str]:
        excluded = {a.validator_id for a in assignments if a.status == AssignmentStatus.OPEN}
        if not self._allow_reassign_to_timed_out:
            excluded |= {
                a.validator_id for a in assignments if a.status == AssignmentStatus.TIMED_OUT
            }
        return excluded

    async def _eligible(self, validator: Validator | None, excluded: set[str]) -> int | None:
        """Open-assignment count when validator can take the work, else None."""
        if validator is None or not validator.is_active or validator.id in excluded:
            return None
        open_count = await self._registry.open_assignment_count(validator.id)
        if not validator.has_capacity(open_count):
            return None
        return open_count

    async def assign(
        self,
        txn: IRequestTransaction,
        now: datetime,
        reassignment: bool = False,
    ) -> ValidatorAssignment:
        """
        Choose a validator for txn.request and write the assignment through txn.

        On re-assignment, pre-selected backups are consumed front-to-back first.
        Raises NoEligibleValidator when nobody can take the request; the
        request is left as it was (backups already tried stay consumed).
        """
        request = txn.request
        excluded = self._excluded(txn.assignments)
        chosen: str | None = None
        cursor = request.backup_cursor

        if reassignment:
            while cursor < len(request.backup_validator_ids):
                backup_id = request.backup_validator_ids[cursor]
                cursor += 1
                backup = await self._registry.get(backup_id)
                if await self._eligible(backup, excluded) is not None:
                    chosen = backup_id
                    logger.info("Request %s: using backup validator %s", request.id, backup_id)
                    break
                logger.info("Request %s: skipping ineligible backup %s", request.id, backup_id)

        if chosen is None:
            candidates = []
            for validator in await self._registry.list_active(request.required_specialization):
                open_count = await self._eligible(validator, excluded)
                if open_count is not None:
                    candidates.append((validator, open_count))
            if not candidates:
                if cursor != request.backup_cursor:
                    await txn.save_request(request.model_copy(update={"backup_cursor": cursor}))
                raise NoEligibleValidator(request.id, request.required_specialization)
            chosen = rank_candidates(candidates)[0][0].id

        updated, assignment = apply_assignment(
            txn.request,
            chosen,
            now,
            self._policy,
            attempt=len(txn.assignments) + 1,
            backup_cursor=cursor,
        )
        await txn.add_assignment(assignment)
        await txn.save_request(updated)
        logger.info(
            "Request %s assigned to %s (attempt %d, %s, due %s)",
            request.id,
            chosen,
            assignment.attempt,
            assignment.sla_level.value,
            assignment.deadline_at.isoformat(),
        )
        return assignment
