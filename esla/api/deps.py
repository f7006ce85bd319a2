"""Request-scoped dependencies."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from esla.engine.service import ValidationService


def get_service(request: Request) -> ValidationService:
    """ValidationService built in the application lifespan."""
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Validation engine not initialised",
        )
    return service


# Type alias for dependency injection
ServiceDep = Annotated[ValidationService, Depends(get_service)]
