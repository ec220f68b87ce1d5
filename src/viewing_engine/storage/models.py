"""Data models for properties, agents and viewing appointments."""

from dataclasses import dataclass, field
from datetime import datetime, date, time
from enum import Enum
from typing import Optional, List


class UserRole(Enum):
    """Role of a directory user."""

    CUSTOMER = "customer"
    AGENT = "agent"
    ADMIN = "admin"


class PropertyStatus(Enum):
    """Listing status."""

    AVAILABLE = "available"
    PENDING = "pending"
    SOLD = "sold"
    RENTED = "rented"


class ListingType(Enum):
    """Whether a listing closes as a sale or a rental."""

    SALE = "sale"
    RENT = "rent"


class AppointmentStatus(Enum):
    """Appointment state.

    ``pending`` awaits agent confirmation, ``pending_approval`` awaits the
    customer's approval of a replacement agent, ``queued`` is waitlisted
    for an exclusive slot. ``scheduled`` and ``completed`` are legacy
    aliases of ``accepted`` and ``done``.
    """

    QUEUED = "queued"
    PENDING = "pending"
    PENDING_APPROVAL = "pending_approval"
    ACCEPTED = "accepted"
    SCHEDULED = "scheduled"
    REJECTED = "rejected"
    DONE = "done"
    COMPLETED = "completed"
    SOLD = "sold"
    RENTED = "rented"
    CANCELLED = "cancelled"


# Statuses that no longer occupy the agent or count towards purchase priority
INACTIVE_STATUSES = frozenset({AppointmentStatus.CANCELLED, AppointmentStatus.REJECTED})

FINISHED_STATUSES = frozenset({AppointmentStatus.DONE, AppointmentStatus.COMPLETED})

CLOSED_STATUSES = frozenset({
    AppointmentStatus.CANCELLED,
    AppointmentStatus.DONE,
    AppointmentStatus.COMPLETED,
    AppointmentStatus.SOLD,
    AppointmentStatus.RENTED,
    AppointmentStatus.REJECTED,
})


@dataclass
class User:
    """A customer, agent or admin known to the directory."""

    id: str
    name: str
    email: str = ""
    role: UserRole = UserRole.CUSTOMER
    phone: str = ""
    sms_verified: bool = False
    blacklisted_agent_ids: List[str] = field(default_factory=list)


@dataclass
class AvailabilitySlot:
    """A bookable start time offered by an agent."""

    id: str
    date: date
    start_time: time
    end_time: Optional[time] = None
    is_booked: bool = False
    booking_id: Optional[str] = None


@dataclass
class UnavailablePeriod:
    """Agent-blocked time such as lunch or a personal event."""

    id: str
    date: date
    start_time: time
    end_time: time
    reason: str = ""

    def covers(self, on_date: date, at: time) -> bool:
        return self.date == on_date and self.start_time <= at < self.end_time


@dataclass
class AgentRating:
    """A customer's 1-5 rating of the agent who ran their viewing."""

    id: str
    agent_id: str
    customer_id: str
    customer_name: str
    appointment_id: str
    rating: int
    comment: str = ""
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class Agent(User):
    """An agent who conducts viewings."""

    role: UserRole = UserRole.AGENT
    is_on_vacation: bool = False
    availability: List[AvailabilitySlot] = field(default_factory=list)
    unavailable_periods: List[UnavailablePeriod] = field(default_factory=list)
    rating: float = 0.0
    rating_count: int = 0
    latest_ratings: List[AgentRating] = field(default_factory=list)
    sales_count: int = 0
    sold_properties: List[str] = field(default_factory=list)

    def find_slot(self, on_date: date, start_time: time) -> Optional[AvailabilitySlot]:
        for slot in self.availability:
            if slot.date == on_date and slot.start_time == start_time:
                return slot
        return None


@dataclass
class Property:
    """A listing customers can book viewings for."""

    id: str
    title: str
    address: str = ""
    price: float = 0
    status: PropertyStatus = PropertyStatus.AVAILABLE
    listing_type: ListingType = ListingType.SALE
    is_exclusive: bool = False
    assigned_agent_id: Optional[str] = None

    # Set once, at the first booking
    first_viewer_customer_id: Optional[str] = None
    first_viewer_timestamp: Optional[datetime] = None

    # Set on sale or rental
    sold_by_agent_id: Optional[str] = None
    sold_date: Optional[date] = None
    sale_price: Optional[float] = None

    @property
    def is_closed(self) -> bool:
        return self.status in (PropertyStatus.SOLD, PropertyStatus.RENTED)


@dataclass
class Appointment:
    """A viewing booked by a customer with an agent."""

    id: str
    property_id: str
    customer_id: str
    agent_id: str
    date: date
    start_time: time
    end_time: Optional[time] = None
    status: AppointmentStatus = AppointmentStatus.PENDING

    # Rights
    has_viewing_rights: bool = True
    has_purchase_rights: bool = False
    purchase_declined: bool = False

    # Waitlist
    queue_position: Optional[int] = None
    was_high_demand_slot: bool = False
    promoted_at: Optional[datetime] = None
    promoted_from_position: Optional[int] = None

    # Ordering
    booking_attempt_timestamp: datetime = field(default_factory=datetime.now)
    seq: int = 0
    created_at: datetime = field(default_factory=datetime.now)

    # Reassignment
    previous_agent_id: Optional[str] = None
    rejection_reason: Optional[str] = None

    # Rating, one per appointment
    has_rated: bool = False
    rating_id: Optional[str] = None

    notes: str = ""

    @property
    def is_active(self) -> bool:
        return self.status not in INACTIVE_STATUSES

    @property
    def slot_key(self) -> "SlotKey":
        return SlotKey(self.property_id, self.agent_id, self.date, self.start_time)

    @property
    def priority_key(self):
        return (self.booking_attempt_timestamp, self.seq)


@dataclass(frozen=True)
class SlotKey:
    """Identity of a waitlist: one property, agent and start time."""

    property_id: str
    agent_id: str
    date: date
    start_time: time


@dataclass
class AppointmentMessage:
    """A message exchanged between customer and agent on an appointment."""

    id: str
    appointment_id: str
    sender_id: str
    sender_role: UserRole
    content: str
    created_at: datetime = field(default_factory=datetime.now)
