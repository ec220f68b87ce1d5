"""Pydantic models for booking API requests and responses."""

from datetime import date, time
from typing import Optional
from pydantic import BaseModel, Field

from ...notifications.alerts import AdminAlert, AssignmentOverride
from ...notifications.dispatcher import Notification
from ...scheduling.availability import AvailableStartTime
from ...storage.models import AgentRating, Appointment, AppointmentMessage, Property


def _hhmm(value: Optional[time]) -> Optional[str]:
    return value.strftime("%H:%M") if value else None


class BookingRequest(BaseModel):
    property_id: str
    agent_id: str
    date: date
    start_time: time
    # Admins may book on a customer's behalf
    customer_id: Optional[str] = None


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class SelectAgentRequest(BaseModel):
    agent_id: str


class ReassignRequest(BaseModel):
    agent_id: Optional[str] = None


class OverrideRequest(BaseModel):
    new_agent_id: str
    reason: str = Field(..., min_length=1)


class SaleRequest(BaseModel):
    status: str = Field("sold", description="sold or rented")
    appointment_id: Optional[str] = None
    sale_price: Optional[float] = None
    # Admins record a sale for the selling agent
    agent_id: Optional[str] = None


class UnavailablePeriodRequest(BaseModel):
    date: date
    start_time: time
    end_time: time
    reason: str = ""


class SlotRequest(BaseModel):
    date: date
    start_time: time
    end_time: Optional[time] = None


class MessageRequest(BaseModel):
    content: str = Field(..., min_length=1)


class AlertRequest(BaseModel):
    alert_type: str = Field(..., description="complaint, timeout or manual_override")
    description: str
    appointment_id: Optional[str] = None


class ResolveAlertRequest(BaseModel):
    resolution: str


class RatingRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = ""


class StartTimeResponse(BaseModel):
    date: str
    start_time: str
    end_time: Optional[str] = None
    slot_id: str
    waitlist: bool = False

    @classmethod
    def build(cls, start: AvailableStartTime) -> "StartTimeResponse":
        return cls(**start.to_dict())


class AppointmentResponse(BaseModel):
    id: str
    property_id: str
    customer_id: str
    agent_id: str
    date: str
    start_time: str
    end_time: Optional[str] = None
    status: str
    has_viewing_rights: bool
    has_purchase_rights: bool
    purchase_declined: bool
    queue_position: Optional[int] = None
    was_high_demand_slot: bool
    promoted_from_position: Optional[int] = None
    booking_attempt_timestamp: str
    previous_agent_id: Optional[str] = None
    rejection_reason: Optional[str] = None
    has_rated: bool = False

    @classmethod
    def build(cls, appointment: Appointment) -> "AppointmentResponse":
        return cls(
            id=appointment.id,
            property_id=appointment.property_id,
            customer_id=appointment.customer_id,
            agent_id=appointment.agent_id,
            date=appointment.date.isoformat(),
            start_time=_hhmm(appointment.start_time),
            end_time=_hhmm(appointment.end_time),
            status=appointment.status.value,
            has_viewing_rights=appointment.has_viewing_rights,
            has_purchase_rights=appointment.has_purchase_rights,
            purchase_declined=appointment.purchase_declined,
            queue_position=appointment.queue_position,
            was_high_demand_slot=appointment.was_high_demand_slot,
            promoted_from_position=appointment.promoted_from_position,
            booking_attempt_timestamp=appointment.booking_attempt_timestamp.isoformat(),
            previous_agent_id=appointment.previous_agent_id,
            rejection_reason=appointment.rejection_reason,
            has_rated=appointment.has_rated,
        )


class ReassignResponse(BaseModel):
    success: bool
    appointment: Optional[AppointmentResponse] = None
    message: str


class PropertyResponse(BaseModel):
    id: str
    title: str
    status: str
    is_exclusive: bool
    first_viewer_customer_id: Optional[str] = None
    sold_by_agent_id: Optional[str] = None
    sold_date: Optional[str] = None
    sale_price: Optional[float] = None

    @classmethod
    def build(cls, prop: Property) -> "PropertyResponse":
        return cls(
            id=prop.id,
            title=prop.title,
            status=prop.status.value,
            is_exclusive=prop.is_exclusive,
            first_viewer_customer_id=prop.first_viewer_customer_id,
            sold_by_agent_id=prop.sold_by_agent_id,
            sold_date=prop.sold_date.isoformat() if prop.sold_date else None,
            sale_price=prop.sale_price,
        )


class PriorityPositionResponse(BaseModel):
    property_id: str
    customer_id: str
    position: int


class OverrideResponse(BaseModel):
    id: str
    appointment_id: str
    previous_agent_id: str
    new_agent_id: str
    reason: str
    created_by: str

    @classmethod
    def build(cls, override: AssignmentOverride) -> "OverrideResponse":
        return cls(
            id=override.id,
            appointment_id=override.appointment_id,
            previous_agent_id=override.previous_agent_id,
            new_agent_id=override.new_agent_id,
            reason=override.reason,
            created_by=override.created_by,
        )


class MessageResponse(BaseModel):
    id: str
    appointment_id: str
    sender_id: str
    sender_role: str
    content: str
    created_at: str

    @classmethod
    def build(cls, message: AppointmentMessage) -> "MessageResponse":
        return cls(
            id=message.id,
            appointment_id=message.appointment_id,
            sender_id=message.sender_id,
            sender_role=message.sender_role.value,
            content=message.content,
            created_at=message.created_at.isoformat(),
        )


class CanMessageResponse(BaseModel):
    appointment_id: str
    can_message: bool


class NotificationResponse(BaseModel):
    id: str
    user_id: str
    type: str
    title: str
    message: str
    related_id: Optional[str] = None
    read: bool
    created_at: str

    @classmethod
    def build(cls, notification: Notification) -> "NotificationResponse":
        return cls(**notification.to_dict())


class AlertResponse(BaseModel):
    id: str
    alert_type: str
    description: str
    status: str
    appointment_id: Optional[str] = None
    customer_id: Optional[str] = None
    agent_id: Optional[str] = None
    resolution: Optional[str] = None
    resolved_by: Optional[str] = None

    @classmethod
    def build(cls, alert: AdminAlert) -> "AlertResponse":
        return cls(
            id=alert.id,
            alert_type=alert.alert_type.value,
            description=alert.description,
            status=alert.status.value,
            appointment_id=alert.appointment_id,
            customer_id=alert.customer_id,
            agent_id=alert.agent_id,
            resolution=alert.resolution,
            resolved_by=alert.resolved_by,
        )


class RatingResponse(BaseModel):
    id: str
    agent_id: str
    appointment_id: str
    customer_id: str
    rating: int
    comment: str
    created_at: str

    @classmethod
    def build(cls, entry: AgentRating) -> "RatingResponse":
        return cls(
            id=entry.id,
            agent_id=entry.agent_id,
            appointment_id=entry.appointment_id,
            customer_id=entry.customer_id,
            rating=entry.rating,
            comment=entry.comment,
            created_at=entry.created_at.isoformat(),
        )


class AgentSummary(BaseModel):
    id: str
    name: str
    is_on_vacation: bool
    rating: float
    rating_count: int
    sales_count: int


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    detail: str

