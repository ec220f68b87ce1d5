"""Admin alerts, notifications and agent self-management routes."""

from typing import List
from fastapi import APIRouter, Depends, Query

from ...core.authz import Capability, require
from ...scheduling.engine import BookingEngine
from ...storage.models import User
from ..middleware.auth import get_actor, get_engine, verify_signature
from ..schemas.booking import (
    AlertRequest,
    AlertResponse,
    NotificationResponse,
    ResolveAlertRequest,
    SlotRequest,
    UnavailablePeriodRequest,
)

router = APIRouter(prefix="/v1", tags=["admin"], dependencies=[Depends(verify_signature)])


@router.get("/notifications", response_model=List[NotificationResponse])
def notifications(
    unread_only: bool = Query(False),
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    """The actor's own notifications, oldest first."""
    return [NotificationResponse.build(n) for n in engine.notifications_for(actor.id, unread_only)]


@router.post("/notifications/{notification_id}/read", response_model=NotificationResponse)
def mark_read(
    notification_id: str,
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    return NotificationResponse.build(engine.mark_notification_read(actor.id, notification_id))


@router.get("/admin/alerts", response_model=List[AlertResponse])
def list_alerts(
    status: str = Query("pending"),
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    require(actor, Capability.RESOLVE_ALERTS)
    alerts = engine.alerts.resolved() if status == "resolved" else engine.alerts.pending()
    return [AlertResponse.build(a) for a in alerts]


@router.post("/admin/alerts", response_model=AlertResponse, status_code=201)
def raise_alert(
    body: AlertRequest,
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    """Open an alert. Customers may file complaints; timeouts come from an external scheduler."""
    alert = engine.raise_alert(body.alert_type, body.description, body.appointment_id)
    return AlertResponse.build(alert)


@router.post("/admin/alerts/{alert_id}/resolve", response_model=AlertResponse)
def resolve_alert(
    alert_id: str,
    body: ResolveAlertRequest,
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    require(actor, Capability.RESOLVE_ALERTS)
    return AlertResponse.build(engine.resolve_alert(alert_id, body.resolution, actor.id))


@router.post("/agents/me/vacation")
def toggle_vacation(
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    require(actor, Capability.MANAGE_AVAILABILITY)
    on_vacation = engine.toggle_vacation(actor.id)
    return {"success": True, "agent_id": actor.id, "is_on_vacation": on_vacation}


@router.post("/agents/me/slots", status_code=201)
def add_slot(
    body: SlotRequest,
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    require(actor, Capability.MANAGE_AVAILABILITY)
    slot = engine.add_availability_slot(actor.id, body.date, body.start_time, body.end_time)
    return {"success": True, "slot_id": slot.id}


@router.post("/agents/me/unavailable", status_code=201)
def add_unavailable(
    body: UnavailablePeriodRequest,
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    require(actor, Capability.MANAGE_AVAILABILITY)
    period = engine.add_unavailable_period(
        actor.id, body.date, body.start_time, body.end_time, body.reason
    )
    return {"success": True, "period_id": period.id}


@router.delete("/agents/me/unavailable/{period_id}")
def remove_unavailable(
    period_id: str,
    actor: User = Depends(get_actor),
    engine: BookingEngine = Depends(get_engine),
):
    require(actor, Capability.MANAGE_AVAILABILITY)
    engine.remove_unavailable_period(actor.id, period_id)
    return {"success": True, "period_id": period_id}
