"""Escalation Clock - recurring sweep over overdue and unassigned requests."""

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass
from datetime import datetime

from esla.engine import sla_stats
from esla.engine.assigner import Assigner
from esla.engine.domain import RequestStatus, SweepReport, ValidatorAssignment
from esla.engine.errors import ConcurrentUpdateConflict, NoEligibleValidator
from esla.engine.policy import SlaPolicyTable
from esla.engine.state_machine import TimeoutOutcome, apply_timeout
from esla.engine.timeutil import utcnow
from esla.storage.protocols import IAssignmentStore, IRequestTransaction, IValidatorRegistry

logger = logging.getLogger(__name__)


@dataclass
class _Result:
    escalated: bool = False
    assigned: bool = False
    failed: bool = False
    unassigned: bool = False
    skipped: bool = False
    timed_out_validator: str | None = None


class EscalationClock:
    """Drives overdue requests through the escalation state machine.

    One sweep runs at a time per clock; requests within a sweep are processed
    concurrently, each under its own store transaction. A request whose lock
    is held elsewhere is skipped and picked up by the next sweep.
    """

    def __init__(
        self,
        store: IAssignmentStore,
        registry: IValidatorRegistry,
        assigner: Assigner,
        policy: SlaPolicyTable,
        interval_seconds: float = 60.0,
        concurrency: int = 8,
    ) -> None:
        self._store = store
        self._registry = registry
        self._assigner = assigner
        self._policy = policy
        self._interval = interval_seconds
        self._concurrency = max(1, concurrency)
        self._sweep_lock = asyncio.Lock()
        self._task: asyncio.Task | None = None
        self._running = False

    async def sweep(self, now: datetime | None = None) -> SweepReport:
        now = now or utcnow()
        async with self._sweep_lock:
            report = SweepReport(started_at=now)
            waiting = await self._store.waiting_request_ids()
            overdue = await self._store.overdue_request_ids(now)
            semaphore = asyncio.Semaphore(self._concurrency)

            async def bounded(handler, request_id: str) -> _Result:
                async with semaphore:
                    return await self._guarded(handler, request_id, now)

            jobs = [bounded(self._process_overdue, rid) for rid in dict.fromkeys(overdue)]
            jobs += [bounded(self._process_waiting, rid) for rid in waiting if rid not in overdue]
            results = await asyncio.gather(*jobs)

            for result in results:
                report.examined += 1
                report.escalated += result.escalated
                report.reassigned += result.assigned
                report.failed += result.failed
                report.unassigned += result.unassigned
                report.skipped += result.skipped

        if report.changed:
            logger.info(
                "Sweep at %s: escalated=%d reassigned=%d failed=%d unassigned=%d skipped=%d",
                now.isoformat(),
                report.escalated,
                report.reassigned,
                report.failed,
                report.unassigned,
                report.skipped,
            )
        return report

    async def _guarded(self, handler, request_id: str, now: datetime) -> _Result:
        """Run one request's handler; a failure never aborts the rest of the sweep."""
        try:
            result = await handler(request_id, now)
        except ConcurrentUpdateConflict as exc:
            logger.debug("Skipping request %s this sweep: %s", request_id, exc)
            return _Result(skipped=True)
        except Exception:
            logger.exception("Request %s failed during sweep; retrying next sweep", request_id)
            return _Result(skipped=True)

        # The timeout is committed at this point; penalize right away
        if result.timed_out_validator:
            try:
                await self._penalize(result.timed_out_validator)
            except Exception:
                logger.exception(
                    "Could not record timeout for validator %s", result.timed_out_validator
                )
        return result

    async def _process_overdue(self, request_id: str, now: datetime) -> _Result:
        async with self._store.transaction(request_id) as txn:
            current = next((a for a in txn.assignments if a.is_open), None)
            if txn.request.is_terminal or current is None or not current.is_overdue(now):
                return _Result()
            return await self._expire(txn, current, now)

    async def _process_waiting(self, request_id: str, now: datetime) -> _Result:
        async with self._store.transaction(request_id) as txn:
            request = txn.request
            if request.status not in (RequestStatus.PENDING, RequestStatus.ESCALATED):
                return _Result()
            if any(a.is_open for a in txn.assignments):
                return _Result()
            if (
                request.status == RequestStatus.ESCALATED
                and request.escalated_date is not None
                and self._policy.deadline_for(request.current_sla_level, request.escalated_date) <= now
            ):
                return await self._expire(txn, None, now)
            return await self._try_assign(txn, now, _Result())

    async def _expire(
        self,
        txn: IRequestTransaction,
        current: ValidatorAssignment | None,
        now: datetime,
    ) -> _Result:
        """Apply a missed deadline, then re-route unless the request failed."""
        updated, closed, outcome = apply_timeout(txn.request, current, now, self._policy)
        if closed is not None:
            await txn.update_assignment(closed)
        await txn.save_request(updated)
        result = _Result(timed_out_validator=current.validator_id if current else None)

        if outcome == TimeoutOutcome.FAILED:
            logger.warning(
                "Request %s FAILED at %s after %d escalations; operator action required",
                updated.id,
                updated.current_sla_level.value,
                updated.escalation_level,
            )
            result.failed = True
            return result

        logger.info(
            "Request %s escalated to %s (level %d, urgency %.1f)",
            updated.id,
            updated.current_sla_level.value,
            updated.escalation_level,
            updated.urgency_boost,
        )
        result.escalated = True
        return await self._try_assign(txn, now, result)

    async def _try_assign(self, txn: IRequestTransaction, now: datetime, result: _Result) -> _Result:
        try:
            await self._assigner.assign(
                txn, now, reassignment=txn.request.original_validator_id is not None
            )
            result.assigned = True
        except NoEligibleValidator as exc:
            logger.warning("%s; will retry next sweep", exc)
            result.unassigned = True
        return result

    async def _penalize(self, validator_id: str) -> None:
        await self._registry.update_stats(validator_id, sla_stats.record_timeout)

    # ------------------------------------------------------------------
    # Background loop
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the periodic sweep loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Escalation clock started (interval %.0fs)", self._interval)

    async def stop(self) -> None:
        """Stop the loop and wait for the current sweep to finish or cancel."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("Escalation clock stopped")

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.sweep()
            except Exception:
                logger.exception("Escalation sweep failed; retrying next interval")
            await asyncio.sleep(self._interval)
