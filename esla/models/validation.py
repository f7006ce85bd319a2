"""Validation request and validator assignment models."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from esla.database import Base
from esla.models.types import JSONType


class ValidationRequestRecord(Base):
    """One row per evidence item awaiting (or past) validation."""

    __tablename__ = "validation_requests"

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True)
    evidence_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    challenge_id: Mapped[str] = mapped_column(Text, nullable=False)
    required_specialization: Mapped[str | None] = mapped_column(Text, nullable=True)
    declared_priority: Mapped[str] = mapped_column(String(20), nullable=False)
    request_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    assigned_validator_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    original_validator_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    backup_validator_ids: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    backup_cursor: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    current_sla_level: Mapped[str] = mapped_column(String(20), nullable=False)
    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_redistributed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    urgency_boost: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, index=True
    )  # PENDING|IN_REVIEW|ESCALATED|COMPLETED|FAILED
    escalated_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    verdict: Mapped[str | None] = mapped_column(String(40), nullable=True)
    completed_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_response_hours: Mapped[float | None] = mapped_column(Float, nullable=True)
    failed_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    requeue_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class AssignmentRecord(Base):
    """One row per (request, validator, attempt)."""

    __tablename__ = "validator_assignments"

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True)
    request_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("validation_requests.id"), nullable=False, index=True
    )
    validator_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    evidence_id: Mapped[str] = mapped_column(Text, nullable=False)
    attempt: Mapped[int] = mapped_column(Integer, nullable=False)
    sla_level: Mapped[str] = mapped_column(String(20), nullable=False)
    assigned_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    deadline_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="OPEN"
    )  # OPEN|COMPLETED|TIMED_OUT|CANCELLED
    verdict: Mapped[str | None] = mapped_column(String(40), nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
