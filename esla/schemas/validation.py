"""Validation request/decision API schemas."""

from pydantic import BaseModel, Field

from esla.engine.domain import (
    DecisionOutcome,
    RequestStatus,
    SlaLevel,
    ValidationRequest,
    ValidatorAssignment,
    Verdict,
)


class SubmitValidationRequest(BaseModel):
    """POST /v1/validations request."""

    evidence_id: str
    user_id: str
    challenge_id: str
    priority: SlaLevel | None = None
    backup_validator_ids: list[str] = Field(default_factory=list)


class ValidationStatusResponse(BaseModel):
    """A validation request with its assignment history."""

    request: ValidationRequest
    assignments: list[ValidatorAssignment] = Field(default_factory=list)


class DecisionRequest(BaseModel):
    """POST /v1/decisions request."""

    evidence_id: str
    validator_id: str
    verdict: Verdict
    comments: str | None = Field(default=None, max_length=2000)


class DecisionResponse(BaseModel):
    """POST /v1/decisions response. outcome=STALE means the verdict was ignored."""

    outcome: DecisionOutcome
    request_id: str
    evidence_id: str
    validator_id: str
    request_status: RequestStatus
    message: str = ""
