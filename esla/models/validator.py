"""Validator registry model."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from esla.database import Base
from esla.models.types import JSONType


class ValidatorRecord(Base):
    """Validators - eligibility, capacity and SLA statistics.

    Written by external validator-management flows; the engine only updates
    the SLA statistics columns.
    """

    __tablename__ = "validators"

    validator_id: Mapped[str] = mapped_column(Text, primary_key=True)
    display_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    specializations: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    rating: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    max_open_assignments: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # SLA statistics
    total_validations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    optimal_validations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    standard_validations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    delayed_validations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    timeout_validations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    average_response_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sla_score: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    last_activity_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
