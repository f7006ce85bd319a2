"""SQLAlchemy repositories for validation requests, assignments, validators, evidence."""

import logging
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import asynccontextmanager
from datetime import datetime
from enum import Enum

from sqlalchemy import exists, func, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from esla.engine.domain import (
    AssignmentStatus,
    EvidenceInfo,
    RequestStatus,
    ValidationRequest,
    Validator,
    ValidatorAssignment,
    ValidatorSlaStats,
)
from esla.engine.errors import (
    ConcurrentUpdateConflict,
    RequestLocked,
    RequestNotFound,
    ValidatorStatsConflict,
)
from esla.engine.timeutil import ensure_utc
from esla.models import AssignmentRecord, EvidenceRecord, ValidationRequestRecord, ValidatorRecord

logger = logging.getLogger(__name__)

_WAITING = (RequestStatus.PENDING.value, RequestStatus.ESCALATED.value)
_STATS_FIELDS = tuple(ValidatorSlaStats.model_fields)

# Postgres lock_not_available (FOR UPDATE NOWAIT on a locked row)
_LOCK_NOT_AVAILABLE = "55P03"
_STATS_UPDATE_ATTEMPTS = 5


def _is_lock_unavailable(exc: DBAPIError) -> bool:
    """True when exc means the row lock is held by another session."""
    for err in (exc.orig, getattr(exc.orig, "__cause__", None)):
        if err is not None and getattr(err, "sqlstate", None) == _LOCK_NOT_AVAILABLE:
            return True
    # sqlite reports contention as "database is locked"
    return isinstance(exc, OperationalError) and "locked" in str(exc.orig).lower()


def _column_values(snapshot) -> dict:
    """Snapshot -> column values (enums to their value, tuples to lists)."""
    values = {}
    for key, value in snapshot.model_dump(mode="python").items():
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, tuple):
            value = list(value)
        values[key] = value
    return values


def _validator_from_record(row: ValidatorRecord) -> Validator:
    stats = ValidatorSlaStats(
        **{name: getattr(row, name) for name in _STATS_FIELDS},
    )
    return Validator(
        id=row.validator_id,
        is_active=row.is_active,
        specializations=tuple(row.specializations or ()),
        rating=row.rating,
        max_open_assignments=row.max_open_assignments,
        stats=stats.model_copy(update={"last_activity_date": ensure_utc(stats.last_activity_date)}),
    )


class SqlRequestTransaction:
    """Row-locked unit of work over one validation_requests row."""

    def __init__(
        self,
        session: AsyncSession,
        request: ValidationRequest,
        assignments: list[ValidatorAssignment],
    ) -> None:
        self._session = session
        self.request = request
        self.assignments = assignments

    async def save_request(self, request: ValidationRequest) -> ValidationRequest:
        """Conditional write keyed on (id, version); bumps the version."""
        values = _column_values(request)
        values.pop("id")
        values["version"] = request.version + 1
        result = await self._session.execute(
            update(ValidationRequestRecord)
            .where(
                ValidationRequestRecord.id == request.id,
                ValidationRequestRecord.version == request.version,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrentUpdateConflict(request.id, "version check failed")
        self.request = request.model_copy(update={"version": request.version + 1})
        return self.request

    async def add_assignment(self, assignment: ValidatorAssignment) -> None:
        self._session.add(AssignmentRecord(**_column_values(assignment)))
        await self._session.flush()
        self.assignments.append(assignment)

    async def update_assignment(self, assignment: ValidatorAssignment) -> None:
        values = _column_values(assignment)
        values.pop("id")
        await self._session.execute(
            update(AssignmentRecord)
            .where(AssignmentRecord.id == assignment.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.assignments = [assignment if a.id == assignment.id else a for a in self.assignments]


class SqlAssignmentStore:
    """IAssignmentStore on async SQLAlchemy. One session per call/transaction."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def create_request(self, request: ValidationRequest) -> ValidationRequest:
        """Insert; if the evidence already has a request, return that one."""
        async with self._session_maker() as session:
            session.add(ValidationRequestRecord(**_column_values(request)))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                existing = await self.get_request_by_evidence(request.evidence_id)
                if existing is None:
                    raise
                return existing
        return request

    async def get_request(self, request_id: str) -> ValidationRequest | None:
        async with self._session_maker() as session:
            row = await session.get(ValidationRequestRecord, request_id)
            return ValidationRequest.model_validate(row) if row else None

    async def get_request_by_evidence(self, evidence_id: str) -> ValidationRequest | None:
        async with self._session_maker() as session:
            result = await session.execute(
                select(ValidationRequestRecord).where(
                    ValidationRequestRecord.evidence_id == evidence_id
                )
            )
            row = result.scalar_one_or_none()
            return ValidationRequest.model_validate(row) if row else None

    async def list_assignments(self, request_id: str) -> list[ValidatorAssignment]:
        async with self._session_maker() as session:
            return await self._load_assignments(session, request_id)

    async def list_requests(self, statuses: Iterable[RequestStatus]) -> list[ValidationRequest]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(ValidationRequestRecord)
                .where(ValidationRequestRecord.status.in_([s.value for s in statuses]))
                .order_by(ValidationRequestRecord.request_date)
            )
            return [ValidationRequest.model_validate(row) for row in result.scalars().all()]

    async def overdue_request_ids(self, now: datetime) -> list[str]:
        """Requests whose OPEN assignment reached its deadline, oldest deadline first."""
        async with self._session_maker() as session:
            result = await session.execute(
                select(AssignmentRecord.request_id)
                .where(
                    AssignmentRecord.status == AssignmentStatus.OPEN.value,
                    AssignmentRecord.deadline_at <= now,
                )
                .order_by(AssignmentRecord.deadline_at)
            )
            return [str(rid) for rid in result.scalars().all()]

    async def waiting_request_ids(self) -> list[str]:
        """PENDING/ESCALATED requests without an OPEN assignment."""
        open_assignment = (
            select(AssignmentRecord.id)
            .where(
                AssignmentRecord.request_id == ValidationRequestRecord.id,
                AssignmentRecord.status == AssignmentStatus.OPEN.value,
            )
        )
        async with self._session_maker() as session:
            result = await session.execute(
                select(ValidationRequestRecord.id)
                .where(
                    ValidationRequestRecord.status.in_(_WAITING),
                    ~exists(open_assignment),
                )
                .order_by(ValidationRequestRecord.request_date)
            )
            return [str(rid) for rid in result.scalars().all()]

    @asynccontextmanager
    async def transaction(self, request_id: str) -> AsyncIterator[SqlRequestTransaction]:
        """
        Lock the request row (FOR UPDATE NOWAIT) for the duration of the block.
        A held lock surfaces as RequestLocked instead of blocking.
        """
        async with self._session_maker() as session:
            try:
                result = await session.execute(
                    select(ValidationRequestRecord)
                    .where(ValidationRequestRecord.id == request_id)
                    .with_for_update(nowait=True)
                )
            except DBAPIError as exc:
                await session.rollback()
                if _is_lock_unavailable(exc):
                    raise RequestLocked(request_id) from exc
                raise
            row = result.scalar_one_or_none()
            if row is None:
                await session.rollback()
                raise RequestNotFound(request_id)
            txn = SqlRequestTransaction(
                session,
                ValidationRequest.model_validate(row),
                await self._load_assignments(session, request_id),
            )
            try:
                yield txn
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    @staticmethod
    async def _load_assignments(session: AsyncSession, request_id: str) -> list[ValidatorAssignment]:
        result = await session.execute(
            select(AssignmentRecord)
            .where(AssignmentRecord.request_id == request_id)
            .order_by(AssignmentRecord.attempt)
        )
        return [ValidatorAssignment.model_validate(row) for row in result.scalars().all()]


class SqlValidatorRegistry:
    """IValidatorRegistry over the validators table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def list_active(self, specialization: str | None) -> list[Validator]:
        # Specializations live in a JSON column; filter in Python to stay dialect-neutral.
        async with self._session_maker() as session:
            result = await session.execute(
                select(ValidatorRecord).where(ValidatorRecord.is_active.is_(True))
            )
            validators = [_validator_from_record(row) for row in result.scalars().all()]
        return [v for v in validators if v.matches(specialization)]

    async def get(self, validator_id: str) -> Validator | None:
        async with self._session_maker() as session:
            row = await session.get(ValidatorRecord, validator_id)
            return _validator_from_record(row) if row else None

    async def open_assignment_count(self, validator_id: str) -> int:
        async with self._session_maker() as session:
            result = await session.execute(
                select(func.count(AssignmentRecord.id)).where(
                    AssignmentRecord.validator_id == validator_id,
                    AssignmentRecord.status == AssignmentStatus.OPEN.value,
                )
            )
            return int(result.scalar_one())

    async def update_stats(
        self,
        validator_id: str,
        apply: Callable[[ValidatorSlaStats], ValidatorSlaStats],
    ) -> ValidatorSlaStats | None:
        """
        Read-modify-write of a validator's SLA statistics.

        The row is locked FOR UPDATE and the write is conditional on
        total_validations being unchanged (every stats change bumps it), so a
        concurrent update is retried on fresh values instead of being lost.
        """
        for _ in range(_STATS_UPDATE_ATTEMPTS):
            async with self._session_maker() as session:
                current = await self._read_stats(session, validator_id)
                if current is None:
                    return None
                updated = apply(current)
                result = await session.execute(
                    update(ValidatorRecord)
                    .where(
                        ValidatorRecord.validator_id == validator_id,
                        ValidatorRecord.total_validations == current.total_validations,
                    )
                    .values(**updated.model_dump(mode="python"))
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    await session.commit()
                    return updated
                await session.rollback()
            logger.debug("Validator %s stats changed concurrently; retrying", validator_id)
        raise ValidatorStatsConflict(validator_id, _STATS_UPDATE_ATTEMPTS)

    async def _read_stats(self, session: AsyncSession, validator_id: str) -> ValidatorSlaStats | None:
        result = await session.execute(
            select(ValidatorRecord)
            .where(ValidatorRecord.validator_id == validator_id)
            .with_for_update()
        )
        row = result.scalar_one_or_none()
        return _validator_from_record(row).stats if row else None


class SqlEvidenceCatalog:
    """IEvidenceCatalog over the evidence table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def lookup(self, evidence_id: str) -> EvidenceInfo | None:
        async with self._session_maker() as session:
            row = await session.get(EvidenceRecord, evidence_id)
            if row is None:
                return None
            return EvidenceInfo(
                evidence_id=row.evidence_id,
                challenge_id=row.challenge_id,
                user_id=row.user_id,
                required_specialization=row.required_specialization,
                priority=row.priority,
            )


async def upsert_validator(
    db: AsyncSession,
    validator_id: str,
    display_name: str | None,
    is_active: bool,
    specializations: list[str],
    rating: float,
    max_open_assignments: int | None,
) -> tuple[ValidatorRecord, bool]:
    """Create or update a validator row. Returns (row, created)."""
    existing = await db.get(ValidatorRecord, validator_id)
    if existing:
        existing.display_name = display_name
        existing.is_active = is_active
        existing.specializations = specializations
        existing.rating = rating
        existing.max_open_assignments = max_open_assignments
        await db.flush()
        return existing, False
    row = ValidatorRecord(
        validator_id=validator_id,
        display_name=display_name,
        is_active=is_active,
        specializations=specializations,
        rating=rating,
        max_open_assignments=max_open_assignments,
    )
    db.add(row)
    await db.flush()
    return row, True
