"""Booking arbitration: availability, conflicts, waitlists and purchase priority."""

from .availability import AvailabilityResolver, AvailableStartTime
from .conflicts import ConflictDetector
from .engine import BookingEngine
from .lifecycle import AppointmentLifecycle, TRANSITIONS, can_transition
from .override import OverrideService
from .priority import PriorityQueueEngine
from .waitlist import WaitlistManager

__all__ = [
    "AvailabilityResolver",
    "AvailableStartTime",
    "ConflictDetector",
    "BookingEngine",
    "AppointmentLifecycle",
    "TRANSITIONS",
    "can_transition",
    "OverrideService",
    "PriorityQueueEngine",
    "WaitlistManager",
]
