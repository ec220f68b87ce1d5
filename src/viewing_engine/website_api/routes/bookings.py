"""Availability, booking and property routes."""

import logging
from datetime import date, time
from typing import Optional, List
from fastapi import APIRouter, Depends, Query

from ...core.authz import Capability, require
from ...scheduling.engine import BookingEngine
from ...storage.models import User, UserRole
from ..middleware.auth import get_actor, get_engine, verify_signature
from ..schemas.booking import (
    AgentSummary,
    AppointmentResponse,
    BookingRequest,
    ErrorResponse,
    PriorityPositionResponse,
    PropertyResponse,
    SaleRequest,
    StartTimeResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["bookings"], dependencies=[Depends(verify_signature)])


@router.get("/agents", response_model=List[AgentSummary])
def list_agents(
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    """Agents the actor may book with; customers never see agents they blacklisted."""
    if actor.role == UserRole.CUSTOMER:
        agents = engine.available_agents_for_customer(actor.id)
    else:
        agents = engine.store.agents
    return [
        AgentSummary(
            id=a.id,
            name=a.name,
            is_on_vacation=a.is_on_vacation,
            rating=a.rating,
            rating_count=a.rating_count,
            sales_count=a.sales_count,
        )
        for a in agents
    ]


@router.get("/agents/free", response_model=List[AgentSummary])
def free_agents(
    on_date: date = Query(..., alias="date"),
    start_time: time = Query(...),
    end_time: Optional[time] = Query(None),
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    require(actor, Capability.REASSIGN)
    return [
        AgentSummary(
            id=a.id,
            name=a.name,
            is_on_vacation=a.is_on_vacation,
            rating=a.rating,
            rating_count=a.rating_count,
            sales_count=a.sales_count,
        )
        for a in engine.agents_free_for_slot(on_date, start_time, end_time)
    ]


@router.get("/agents/{agent_id}/availability", response_model=List[StartTimeResponse])
def availability(
    agent_id: str,
    as_of: Optional[date] = Query(None),
    property_id: Optional[str] = Query(None),
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    """Bookable start times for an agent inside the booking window."""
    starts = engine.resolve_available_start_times(agent_id, as_of=as_of, property_id=property_id)
    return [StartTimeResponse.build(s) for s in starts]


@router.post(
    "/bookings",
    response_model=AppointmentResponse,
    status_code=201,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        410: {"model": ErrorResponse},
    },
)
def create_booking(
    body: BookingRequest,
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    """Book a viewing.

    A 409 ``slot_unavailable`` means the slot was taken after it was shown;
    fetch availability again and pick another time.
    """
    require(actor, Capability.BOOK)
    customer_id = actor.id
    if actor.role == UserRole.ADMIN and body.customer_id:
        customer_id = body.customer_id

    appointment = engine.create_booking(
        body.property_id,
        customer_id,
        body.agent_id,
        body.date,
        body.start_time,
    )
    return AppointmentResponse.build(appointment)


@router.get("/customers/{customer_id}/appointments", response_model=List[AppointmentResponse])
def customer_appointments(
    customer_id: str,
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    if actor.role != UserRole.ADMIN and actor.id != customer_id:
        require(actor, Capability.VIEW_QUEUES)
    return [AppointmentResponse.build(a) for a in engine.store.for_customer(customer_id)]


@router.post("/properties/{property_id}/sale", response_model=PropertyResponse)
def mark_sold(
    property_id: str,
    body: SaleRequest,
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    """Close a listing as sold or rented and cancel every other open viewing."""
    require(actor, Capability.RESPOND)
    agent_id = actor.id
    if actor.role == UserRole.ADMIN:
        agent_id = body.agent_id or engine.store.get_property(property_id).assigned_agent_id or ""

    prop = engine.mark_sold_or_rented(
        property_id,
        body.status,
        agent_id,
        appointment_id=body.appointment_id,
        sale_price=body.sale_price,
    )
    return PropertyResponse.build(prop)


@router.get("/properties/{property_id}/priority", response_model=List[AppointmentResponse])
def priority_queue(
    property_id: str,
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    """Purchase-priority order for a property."""
    require(actor, Capability.VIEW_QUEUES)
    return [AppointmentResponse.build(a) for a in engine.get_purchase_priority_queue(property_id)]


@router.get("/properties/{property_id}/priority/{customer_id}", response_model=PriorityPositionResponse)
def priority_position(
    property_id: str,
    customer_id: str,
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    """Zero-based purchase-priority rank; -1 when the customer has no active viewing."""
    if actor.id != customer_id:
        require(actor, Capability.VIEW_QUEUES)
    return PriorityPositionResponse(
        property_id=property_id,
        customer_id=customer_id,
        position=engine.priority_position(property_id, customer_id),
    )


@router.get("/properties/{property_id}/waitlist", response_model=List[AppointmentResponse])
def waitlist(
    property_id: str,
    agent_id: str = Query(...),
    on_date: date = Query(..., alias="date"),
    start_time: time = Query(...),
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    require(actor, Capability.VIEW_QUEUES)
    return [
        AppointmentResponse.build(a)
        for a in engine.get_waitlist(property_id, agent_id, on_date, start_time)
    ]
