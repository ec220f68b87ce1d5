"""Storage layer for properties, agents and appointments."""

from .models import (
    User,
    UserRole,
    Agent,
    AgentRating,
    AvailabilitySlot,
    UnavailablePeriod,
    Property,
    PropertyStatus,
    ListingType,
    Appointment,
    AppointmentStatus,
    AppointmentMessage,
    SlotKey,
)
from .store import BookingStore

__all__ = [
    "User",
    "UserRole",
    "Agent",
    "AgentRating",
    "AvailabilitySlot",
    "UnavailablePeriod",
    "Property",
    "PropertyStatus",
    "ListingType",
    "Appointment",
    "AppointmentStatus",
    "AppointmentMessage",
    "SlotKey",
    "BookingStore",
]
