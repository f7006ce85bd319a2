"""Admin endpoints - operator queue, re-queue, sweep, validators."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from esla.api.deps import ServiceDep
from esla.database import get_db
from esla.engine.errors import ConcurrentUpdateConflict, InvalidTransition, RequestNotFound
from esla.engine.timeutil import utcnow
from esla.schemas.admin import OperatorQueueResponse, SweepResponse, UpsertValidatorRequest
from esla.schemas.validation import ValidationStatusResponse
from esla.storage.repositories import upsert_validator

router = APIRouter()


@router.get("/operator-queue", response_model=OperatorQueueResponse)
async def operator_queue(service: ServiceDep):
    """FAILED and long-ESCALATED requests awaiting manual handling."""
    now = utcnow()
    items = await service.operator_queue(now)
    return OperatorQueueResponse(generated_at=now, count=len(items), items=items)


@router.post("/validations/{request_id}/requeue", response_model=ValidationStatusResponse)
async def requeue(request_id: str, service: ServiceDep):
    """Re-queue a FAILED request at PENDING with its escalation level reset."""
    try:
        view = await service.requeue(request_id)
    except RequestNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except (InvalidTransition, ConcurrentUpdateConflict) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return ValidationStatusResponse(request=view.request, assignments=list(view.assignments))


@router.post("/sweep", response_model=SweepResponse)
async def sweep(service: ServiceDep):
    """Run one escalation sweep now (same code path as the background clock)."""
    report = await service.sweep()
    return SweepResponse(**report.model_dump())


@router.put("/validators/{validator_id}")
async def put_validator(
    validator_id: str,
    body: UpsertValidatorRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Create or update a validator in the registry."""
    row, created = await upsert_validator(
        db,
        validator_id=validator_id,
        display_name=body.display_name,
        is_active=body.is_active,
        specializations=body.specializations,
        rating=body.rating,
        max_open_assignments=body.max_open_assignments,
    )
    await db.commit()
    return {
        "validator_id": row.validator_id,
        "is_active": row.is_active,
        "specializations": row.specializations,
        "rating": row.rating,
        "max_open_assignments": row.max_open_assignments,
        "state": "created" if created else "updated",
    }
