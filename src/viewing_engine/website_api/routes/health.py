"""Health check routes."""

from fastapi import APIRouter, Depends

from ... import __version__
from ...scheduling.engine import BookingEngine
from ..middleware.auth import get_engine

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    return {"status": "healthy", "service": "viewing-engine-api", "version": __version__}


@router.get("/ready")
def ready(engine: BookingEngine = Depends(get_engine)):
    """Readiness check - verifies the engine has a directory to work with."""
    agents = len(engine.store.agents)
    if not agents:
        return {"status": "not_ready", "detail": "No agents loaded"}
    return {"status": "ready", "agents": agents, "properties": len(engine.store.properties)}
