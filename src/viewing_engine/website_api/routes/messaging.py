"""Appointment messaging routes."""

from typing import List
from fastapi import APIRouter, Depends

from ...core.authz import Capability, require_party
from ...scheduling.engine import BookingEngine
from ...storage.models import User, UserRole
from ...core.errors import PermissionDeniedError
from ..middleware.auth import get_actor, get_engine, verify_signature
from ..schemas.booking import CanMessageResponse, MessageRequest, MessageResponse

router = APIRouter(prefix="/v1", tags=["messaging"], dependencies=[Depends(verify_signature)])


@router.get("/appointments/{appointment_id}/can-message", response_model=CanMessageResponse)
def can_message(
    appointment_id: str,
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    return CanMessageResponse(
        appointment_id=appointment_id,
        can_message=engine.can_message(appointment_id),
    )


@router.get("/appointments/{appointment_id}/messages", response_model=List[MessageResponse])
def thread(
    appointment_id: str,
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    appointment = engine.get_appointment(appointment_id)
    if actor.role != UserRole.ADMIN:
        require_party(actor, appointment, Capability.MESSAGE)
    return [MessageResponse.build(m) for m in engine.get_messages(appointment_id)]


@router.post("/appointments/{appointment_id}/messages", response_model=MessageResponse, status_code=201)
def send(
    appointment_id: str,
    body: MessageRequest,
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    """Send a message; 403 ``messaging_not_allowed`` until both sides are verified and the viewing is confirmed."""
    require_party(actor, engine.get_appointment(appointment_id), Capability.MESSAGE)
    return MessageResponse.build(engine.send_message(appointment_id, actor.id, body.content))


@router.post("/users/{user_id}/verify-sms")
def verify_sms(
    user_id: str,
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    if actor.id != user_id and actor.role != UserRole.ADMIN:
        raise PermissionDeniedError("Users can only verify their own phone")
    user = engine.verify_sms(user_id)
    return {"success": True, "user_id": user.id, "sms_verified": user.sms_verified}
