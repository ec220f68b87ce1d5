"""Request authentication and actor resolution."""

import hmac
import hashlib
from fastapi import Depends, Request, HTTPException

from ...scheduling.engine import BookingEngine
from ...storage.models import User
from ..config import settings


def get_engine(request: Request) -> BookingEngine:
    return request.app.state.engine


async def verify_signature(request: Request):
    """Validate requests using HMAC-SHA256 signature or shared secret.

    Skipped when VIEWINGS_API_SECRET is unset. Header options (checked in order):
    1. X-Viewings-Signature: HMAC-SHA256 of request body using VIEWINGS_API_SECRET
    2. X-Viewings-Secret: Direct match against VIEWINGS_API_SECRET
    """
    if not settings.api_secret:
        return True

    body = await request.body()

    # Option 1: HMAC signature
    signature = request.headers.get("X-Viewings-Signature")
    if signature:
        expected = hmac.new(
            settings.api_secret.encode(),
            body,
            hashlib.sha256,
        ).hexdigest()
        if hmac.compare_digest(signature, expected):
            return True

    # Option 2: Direct secret
    secret = request.headers.get("X-Viewings-Secret")
    if secret and hmac.compare_digest(secret, settings.api_secret):
        return True

    raise HTTPException(
        status_code=401,
        detail={"success": False, "error": "auth_error", "detail": "Invalid or missing authentication"},
    )


async def get_actor(request: Request, engine: BookingEngine = Depends(get_engine)) -> User:
    """Resolve the acting user from X-Actor-Id; the role comes from the directory, never the client."""
    actor_id = request.headers.get("X-Actor-Id")
    actor = engine.lookup(actor_id) if actor_id else None
    if actor is None:
        raise HTTPException(
            status_code=401,
            detail={"success": False, "error": "auth_error", "detail": "Unknown or missing actor"},
        )
    return actor
