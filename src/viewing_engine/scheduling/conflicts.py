"""Agent double-booking detection."""

import logging
from datetime import date, time
from typing import Optional, List

from ..storage.models import Appointment
from ..storage.store import BookingStore

logger = logging.getLogger(__name__)


def ranges_overlap(start: time, end: time, other_start: time, other_end: time) -> bool:
    """Half-open interval overlap; touching boundaries do not overlap."""
    return start < other_end and end > other_start


class ConflictDetector:
    """Decide whether an agent is already occupied at a given time.

    Only cancelled and rejected appointments are ignored. When either side
    has no end time the agent controls when the viewing ends, so the
    only usable signal is an identical start time; that simplification is
    kept as is rather than guessing a duration.
    """

    def __init__(self, store: BookingStore):
        self.store = store

    def conflicts(
        self,
        agent_id: str,
        on_date: date,
        start_time: time,
        end_time: Optional[time] = None,
        exclude_appointment_id: Optional[str] = None,
    ) -> List[Appointment]:
        """Return the active appointments that clash with the requested range."""
        clashes = []
        for appointment in self.store.for_agent_on(agent_id, on_date):
            if appointment.id == exclude_appointment_id or not appointment.is_active:
                continue

            if end_time is not None and appointment.end_time is not None:
                if ranges_overlap(start_time, end_time, appointment.start_time, appointment.end_time):
                    clashes.append(appointment)
            elif appointment.start_time == start_time:
                clashes.append(appointment)

        return clashes

    def has_conflict(
        self,
        agent_id: str,
        on_date: date,
        start_time: time,
        end_time: Optional[time] = None,
        exclude_appointment_id: Optional[str] = None,
    ) -> bool:
        return bool(self.conflicts(agent_id, on_date, start_time, end_time, exclude_appointment_id))
