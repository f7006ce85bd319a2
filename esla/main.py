"""ESLA FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from esla.api.admin import router as admin_router
from esla.api.health import router as health_router
from esla.api.validations import router as validations_router
from esla.config import settings
from esla.database import async_session_maker
from esla.engine.service import ValidationService
from esla.storage.repositories import SqlAssignmentStore, SqlEvidenceCatalog, SqlValidatorRegistry

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = SqlAssignmentStore(async_session_maker)
    service = ValidationService.from_settings(
        settings,
        store,
        SqlValidatorRegistry(async_session_maker),
        SqlEvidenceCatalog(async_session_maker),
    )
    app.state.service = service
    if settings.clock_enabled:
        await service.clock.start()
    else:
        logger.info("Escalation clock disabled; use POST /v1/admin/sweep")
    yield
    await service.clock.stop()


app = FastAPI(
    title="ESLA - Validation Assignment & SLA Escalation",
    description="Assigns evidence to validators and escalates missed SLA deadlines",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router, tags=["Health"])
app.include_router(validations_router, prefix="/v1", tags=["Validations"])
app.include_router(admin_router, prefix="/v1/admin", tags=["Admin"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {"service": "ESLA", "version": "0.1.0", "docs": "/docs"}
