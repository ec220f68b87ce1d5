"""Agent availability resolution."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, time, date
from typing import Optional, List, Dict, Any, Tuple

from ..core.config import EngineConfig
from ..storage.models import Agent, AvailabilitySlot, CLOSED_STATUSES, FINISHED_STATUSES, Property, SlotKey
from ..storage.store import BookingStore
from .conflicts import ConflictDetector

logger = logging.getLogger(__name__)


@dataclass
class AvailableStartTime:
    """A start time a customer may pick."""

    date: date
    start_time: time
    end_time: Optional[time] = None
    slot_id: str = ""
    # Taken by another customer of the same exclusive property; booking it joins the waitlist
    waitlist: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "start_time": self.start_time.strftime("%H:%M"),
            "end_time": self.end_time.strftime("%H:%M") if self.end_time else None,
            "slot_id": self.slot_id,
            "waitlist": self.waitlist,
        }


def _add_minutes(on_date: date, at: time, minutes: int) -> time:
    moved = datetime.combine(on_date, at) + timedelta(minutes=minutes)
    if moved.date() != on_date:
        return time.max
    return moved.time()


class AvailabilityResolver:
    """Turn an agent's slot list into the start times that can be booked."""

    def __init__(self, store: BookingStore, conflicts: ConflictDetector, config: EngineConfig):
        self.store = store
        self.conflicts = conflicts
        self.config = config

    def last_working_hour(self, agent: Agent, on_date: date) -> time:
        """Latest slot end for the agent that day, else the configured end of day."""
        ends = [
            slot.end_time or _add_minutes(on_date, slot.start_time, self.config.default_viewing_minutes)
            for slot in agent.availability
            if slot.date == on_date
        ]
        return max(ends) if ends else self.config.last_working_hour

    def buffer_windows(self, agent: Agent, on_date: date) -> List[Tuple[time, time]]:
        """Rest windows following each completed viewing on the date."""
        if self.config.buffer_hours <= 0:
            return []

        cap = self.last_working_hour(agent, on_date)
        windows = []
        for appointment in self.store.for_agent_on(agent.id, on_date):
            if appointment.status not in FINISHED_STATUSES:
                continue
            viewing_end = appointment.end_time or _add_minutes(
                on_date, appointment.start_time, self.config.default_viewing_minutes
            )
            buffer_end = min(_add_minutes(on_date, viewing_end, self.config.buffer_hours * 60), cap)
            if buffer_end > viewing_end:
                windows.append((viewing_end, buffer_end))
        return windows

    def unbookable_reason(
        self,
        agent: Agent,
        on_date: date,
        start_time: time,
        today: date,
        prop: Optional[Property] = None,
        booking_window_days: Optional[int] = None,
        exclude_appointment_id: Optional[str] = None,
    ) -> Optional[str]:
        """Why ``(on_date, start_time)`` cannot be booked, or None when it can.

        A slot held by another customer of the same exclusive property is
        reported as bookable: the booking will be queued.
        """
        window = self.config.booking_window_days if booking_window_days is None else booking_window_days

        if agent.is_on_vacation:
            return "agent is on vacation"
        if on_date < today:
            return "date is in the past"
        if on_date > today + timedelta(days=window):
            return "date is outside the booking window"

        slot = agent.find_slot(on_date, start_time)
        if slot is None:
            return "agent has no slot at that time"

        for period in agent.unavailable_periods:
            if period.covers(on_date, start_time):
                return "agent is unavailable at that time"

        for buffer_start, buffer_end in self.buffer_windows(agent, on_date):
            if buffer_start <= start_time < buffer_end:
                return "agent is resting after a viewing"

        holders = self._joinable_holders(agent, slot, prop)
        clashes = self.conflicts.conflicts(
            agent.id, on_date, start_time, slot.end_time, exclude_appointment_id
        )
        holder_ids = {a.id for a in holders}
        if any(c.id not in holder_ids for c in clashes):
            return "agent already has a viewing at that time"
        if slot.is_booked and slot.booking_id not in holder_ids and slot.booking_id != exclude_appointment_id:
            return "slot is already booked"
        return None

    def _joinable_holders(self, agent: Agent, slot: AvailabilitySlot, prop: Optional[Property]):
        """Active appointments of ``prop`` on this slot that a new booking may queue behind or join."""
        if prop is None:
            return []
        if not prop.is_exclusive and not self.config.allow_group_viewings:
            return []
        key = SlotKey(prop.id, agent.id, slot.date, slot.start_time)
        return [a for a in self.store.for_slot(key) if a.status not in CLOSED_STATUSES]

    def start_times(
        self,
        agent: Agent,
        today: date,
        booking_window_days: Optional[int] = None,
        prop: Optional[Property] = None,
    ) -> List[AvailableStartTime]:
        """Bookable start times inside the rolling window, ordered by date then time."""
        if agent.is_on_vacation:
            logger.debug(f"Agent {agent.id} is on vacation; no start times")
            return []

        results = []
        for slot in sorted(agent.availability, key=lambda s: (s.date, s.start_time)):
            reason = self.unbookable_reason(
                agent, slot.date, slot.start_time, today, prop, booking_window_days
            )
            if reason:
                continue
            results.append(AvailableStartTime(
                date=slot.date,
                start_time=slot.start_time,
                end_time=slot.end_time,
                slot_id=slot.id,
                waitlist=bool(prop and prop.is_exclusive and self._joinable_holders(agent, slot, prop)),
            ))

        return results
