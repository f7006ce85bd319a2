"""Validation submission, status and decision endpoints."""

from fastapi import APIRouter, HTTPException, status

from esla.api.deps import ServiceDep
from esla.engine.errors import (
    AssignmentNotFound,
    ConcurrentUpdateConflict,
    EvidenceNotFound,
    InvalidTransition,
    RequestNotFound,
    TerminalFailure,
)
from esla.schemas.validation import (
    DecisionRequest,
    DecisionResponse,
    SubmitValidationRequest,
    ValidationStatusResponse,
)

router = APIRouter()


@router.post(
    "/validations",
    response_model=ValidationStatusResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_for_validation(body: SubmitValidationRequest, service: ServiceDep):
    """
    Submit evidence for validation. The first validator is assigned
    immediately when one is eligible; otherwise the request stays PENDING
    and the escalation clock retries. Idempotent per evidence_id.
    """
    try:
        view = await service.submit_for_validation(
            evidence_id=body.evidence_id,
            user_id=body.user_id,
            challenge_id=body.challenge_id,
            priority=body.priority,
            backup_validator_ids=tuple(body.backup_validator_ids),
        )
    except EvidenceNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except ConcurrentUpdateConflict as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return ValidationStatusResponse(request=view.request, assignments=list(view.assignments))


@router.get("/validations/{request_id}", response_model=ValidationStatusResponse)
async def get_status(request_id: str, service: ServiceDep):
    """Current state of a validation request and its assignments."""
    try:
        view = await service.get_status(request_id)
    except RequestNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return ValidationStatusResponse(request=view.request, assignments=list(view.assignments))


@router.post("/decisions", response_model=DecisionResponse)
async def record_decision(body: DecisionRequest, service: ServiceDep):
    """
    Record a validator's verdict. A verdict for an assignment that already
    timed out is acknowledged with outcome STALE and changes nothing.
    """
    try:
        result = await service.record_decision(
            evidence_id=body.evidence_id,
            validator_id=body.validator_id,
            verdict=body.verdict,
            comments=body.comments,
        )
    except (RequestNotFound, AssignmentNotFound) as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except (ConcurrentUpdateConflict, InvalidTransition, TerminalFailure) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return DecisionResponse(**result.model_dump())
