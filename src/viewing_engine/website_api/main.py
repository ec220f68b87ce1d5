"""FastAPI application factory for the viewing booking API."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .. import __version__
from ..core.config import ConfigManager
from ..core.errors import (
    AgentConflictError,
    InvalidTransitionError,
    MessagingNotAllowedError,
    NotFoundError,
    PermissionDeniedError,
    PropertyAlreadySoldError,
    SlotUnavailableError,
    ViewingEngineError,
)
from ..notifications.dispatcher import InMemorySink, LoggingSink
from ..scheduling.engine import BookingEngine
from ..storage.seed import clock_for, load_seed, populate, replay_bookings
from .config import settings
from .routes.admin import router as admin_router
from .routes.appointments import router as appointments_router
from .routes.bookings import router as bookings_router
from .routes.health import router as health_router
from .routes.messaging import router as messaging_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Most specific first; the base class catches anything unlisted
ERROR_RESPONSES = [
    (SlotUnavailableError, 409, "slot_unavailable"),
    (AgentConflictError, 409, "agent_conflict"),
    (InvalidTransitionError, 422, "invalid_transition"),
    (PropertyAlreadySoldError, 410, "property_already_sold"),
    (NotFoundError, 404, "not_found"),
    (PermissionDeniedError, 403, "permission_denied"),
    (MessagingNotAllowedError, 403, "messaging_not_allowed"),
    (ViewingEngineError, 400, "booking_error"),
]


def error_response(exc: ViewingEngineError) -> JSONResponse:
    for error_class, status_code, code in ERROR_RESPONSES:
        if isinstance(exc, error_class):
            return JSONResponse(
                status_code=status_code,
                content={"detail": {"success": False, "error": code, "detail": exc.detail}},
            )
    raise exc


def build_engine() -> BookingEngine:
    """Engine configured from VIEWINGS_* settings, seeded when a seed file is set."""
    config = ConfigManager(Path(settings.config_path)).config
    data = load_seed(settings.seed_path) if settings.seed_path else {}
    engine = BookingEngine(config=config, clock=clock_for(data), sinks=[InMemorySink(), LoggingSink()])
    populate(engine, data)
    replay_bookings(engine, data)
    return engine


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting viewing engine API")
    yield
    logger.info("Viewing engine API shutting down")


def create_app(engine: Optional[BookingEngine] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Viewing Engine API",
        description="Property viewing bookings, waitlists and purchase priority",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.engine = engine or build_engine()

    @app.exception_handler(ViewingEngineError)
    async def engine_error_handler(request: Request, exc: ViewingEngineError):
        if not isinstance(exc, (SlotUnavailableError, AgentConflictError)):
            logger.warning(f"{request.method} {request.url.path} refused: {exc.detail}")
        return error_response(exc)

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=400,
            content={"detail": {"success": False, "error": "validation_error", "detail": str(exc)}},
        )

    # Routes
    app.include_router(health_router)
    app.include_router(bookings_router)
    app.include_router(appointments_router)
    app.include_router(messaging_router)
    app.include_router(admin_router)

    return app


# Module-level app instance for uvicorn
app = create_app()
