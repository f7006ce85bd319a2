"""Admin API schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from esla.engine.domain import ValidationRequest


class UpsertValidatorRequest(BaseModel):
    """PUT /v1/admin/validators/{id} - validator payload."""

    display_name: str | None = None
    is_active: bool = True
    specializations: list[str] = Field(default_factory=list)
    rating: float = Field(default=0.0, ge=0.0, le=5.0)
    max_open_assignments: int | None = Field(default=None, ge=1)


class OperatorQueueResponse(BaseModel):
    """GET /v1/admin/operator-queue response."""

    generated_at: datetime
    count: int
    items: list[ValidationRequest] = Field(default_factory=list)


class SweepResponse(BaseModel):
    """POST /v1/admin/sweep response."""

    started_at: datetime
    examined: int
    escalated: int
    reassigned: int
    failed: int
    unassigned: int
    skipped: int
