"""Appointment action routes: agent responses, cancellation and agent changes."""

import logging
from fastapi import APIRouter, Depends

from ...core.authz import Capability, require, require_party
from ...scheduling.engine import BookingEngine
from ...storage.models import User
from ..middleware.auth import get_actor, get_engine, verify_signature
from ..schemas.booking import (
    AppointmentResponse,
    ErrorResponse,
    OverrideRequest,
    OverrideResponse,
    RatingRequest,
    RatingResponse,
    ReassignRequest,
    ReassignResponse,
    RejectRequest,
    SelectAgentRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1/appointments",
    tags=["appointments"],
    dependencies=[Depends(verify_signature)],
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)


@router.get("/{appointment_id}", response_model=AppointmentResponse)
def get_appointment(
    appointment_id: str,
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    appointment = engine.get_appointment(appointment_id)
    if actor.id not in (appointment.customer_id, appointment.agent_id):
        require(actor, Capability.OVERRIDE)
    return AppointmentResponse.build(appointment)


@router.post("/{appointment_id}/accept", response_model=AppointmentResponse)
def accept(
    appointment_id: str,
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    require_party(actor, engine.get_appointment(appointment_id), Capability.RESPOND)
    return AppointmentResponse.build(engine.accept_appointment(appointment_id))


@router.post("/{appointment_id}/reject", response_model=AppointmentResponse)
def reject(
    appointment_id: str,
    body: RejectRequest = RejectRequest(),
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    require_party(actor, engine.get_appointment(appointment_id), Capability.RESPOND)
    return AppointmentResponse.build(engine.reject_appointment(appointment_id, body.reason))


@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
def cancel(
    appointment_id: str,
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    require_party(actor, engine.get_appointment(appointment_id), Capability.CANCEL)
    return AppointmentResponse.build(engine.cancel_appointment(appointment_id))


@router.post("/{appointment_id}/done", response_model=AppointmentResponse)
def mark_done(
    appointment_id: str,
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    require_party(actor, engine.get_appointment(appointment_id), Capability.RESPOND)
    return AppointmentResponse.build(engine.mark_done(appointment_id))


@router.post("/{appointment_id}/decline-purchase", response_model=AppointmentResponse)
def decline_purchase(
    appointment_id: str,
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    """Give up purchase rights; the next customer in line inherits them."""
    require_party(actor, engine.get_appointment(appointment_id), Capability.DECLINE_PURCHASE)
    return AppointmentResponse.build(engine.decline_purchase(appointment_id))


@router.post("/{appointment_id}/approve-agent", response_model=AppointmentResponse)
def approve_agent(
    appointment_id: str,
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    require_party(actor, engine.get_appointment(appointment_id), Capability.APPROVE_AGENT)
    return AppointmentResponse.build(engine.approve_new_agent(appointment_id))


@router.post("/{appointment_id}/select-agent", response_model=AppointmentResponse)
def select_agent(
    appointment_id: str,
    body: SelectAgentRequest,
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    require_party(actor, engine.get_appointment(appointment_id), Capability.APPROVE_AGENT)
    return AppointmentResponse.build(engine.select_different_agent(appointment_id, body.agent_id))


@router.post("/{appointment_id}/reassign", response_model=ReassignResponse)
def reassign(
    appointment_id: str,
    body: ReassignRequest = ReassignRequest(),
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    """Offer a rejected booking to another agent, pending the customer's approval."""
    require(actor, Capability.REASSIGN)
    appointment = engine.reassign_after_rejection(appointment_id, body.agent_id)
    if appointment is None:
        return ReassignResponse(success=False, message="No agents available for this slot")
    return ReassignResponse(
        success=True,
        appointment=AppointmentResponse.build(appointment),
        message=f"Assigned to {appointment.agent_id}, awaiting customer approval",
    )


@router.post(
    "/{appointment_id}/override",
    response_model=OverrideResponse,
    responses={409: {"model": ErrorResponse}},
)
def override(
    appointment_id: str,
    body: OverrideRequest,
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    """Admin reassignment. A 409 ``agent_conflict`` leaves the appointment unchanged."""
    require(actor, Capability.OVERRIDE)
    entry = engine.override_agent(appointment_id, body.new_agent_id, body.reason, actor.id)
    logger.info(f"Override {entry.id} recorded by {actor.id}")
    return OverrideResponse.build(entry)


@router.post("/{appointment_id}/rating", response_model=RatingResponse, status_code=201)
def rate_agent(
    appointment_id: str,
    body: RatingRequest,
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    """Rate the agent once the viewing is done. One rating per appointment."""
    require_party(actor, engine.get_appointment(appointment_id), Capability.RATE)
    entry = engine.rate_agent(appointment_id, actor.id, body.rating, body.comment)
    return RatingResponse.build(entry)
