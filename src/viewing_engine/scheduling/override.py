"""Admin reassignment of an appointment to a different agent."""

import logging
from typing import Optional

from ..core.errors import AgentConflictError, InvalidTransitionError, PropertyAlreadySoldError
from ..notifications.alerts import AlertManager, AssignmentOverride
from ..notifications.dispatcher import NotificationDispatcher, NotificationType
from ..storage.models import Agent, Appointment, AppointmentStatus, CLOSED_STATUSES
from ..storage.store import BookingStore
from .conflicts import ConflictDetector
from .lifecycle import book_slot, release_slot

logger = logging.getLogger(__name__)


class OverrideService:
    """Move a live appointment to another agent on an admin's say-so.

    The new agent is checked against the same date and time before anything
    changes; a clash raises ``AgentConflictError`` and leaves the booking
    where it was.
    """

    def __init__(
        self,
        store: BookingStore,
        conflicts: ConflictDetector,
        waitlist,
        priority,
        alerts: AlertManager,
        dispatcher: NotificationDispatcher,
    ):
        self.store = store
        self.conflicts = conflicts
        self.waitlist = waitlist
        self.priority = priority
        self.alerts = alerts
        self.dispatcher = dispatcher

    def check(self, appointment: Appointment, new_agent: Agent) -> Optional[str]:
        """Reason the override cannot happen, or None."""
        if new_agent.id == appointment.agent_id:
            return f"Agent {new_agent.id} already holds this appointment"
        if new_agent.is_on_vacation:
            return f"Agent {new_agent.id} is on vacation"
        for period in new_agent.unavailable_periods:
            if period.covers(appointment.date, appointment.start_time):
                return f"Agent {new_agent.id} is unavailable at that time"
        clashes = self.conflicts.conflicts(
            new_agent.id, appointment.date, appointment.start_time, appointment.end_time, appointment.id
        )
        if clashes:
            return f"Agent {new_agent.id} already has a viewing at {appointment.start_time.strftime('%H:%M')}"
        return None

    def reassign(
        self,
        appointment: Appointment,
        new_agent: Agent,
        reason: str,
        actor_id: str,
    ) -> AssignmentOverride:
        if appointment.status == AppointmentStatus.QUEUED:
            raise InvalidTransitionError("Waitlisted appointments cannot be reassigned")
        if appointment.status in CLOSED_STATUSES:
            raise InvalidTransitionError(
                f"Cannot reassign a '{appointment.status.value}' appointment"
            )
        prop = self.store.get_property(appointment.property_id)
        if prop.is_closed:
            raise PropertyAlreadySoldError(f"Property {prop.id} is already {prop.status.value}")

        problem = self.check(appointment, new_agent)
        if problem:
            logger.warning(f"Override of {appointment.id} refused: {problem}")
            raise AgentConflictError(problem)

        old_key = appointment.slot_key
        old_agent_id = appointment.agent_id

        release_slot(self.store, appointment)
        self.store.move_to_agent(appointment, new_agent.id)
        book_slot(self.store, appointment)

        # The old agent's slot is empty now, so anyone queued for it moves up
        if prop.is_exclusive and self.waitlist.promote_if_vacant(old_key):
            self.priority.recompute(prop.id)

        override = self.alerts.record_override(
            appointment_id=appointment.id,
            previous_agent_id=old_agent_id,
            new_agent_id=new_agent.id,
            reason=reason,
            created_by=actor_id,
            resolution=f"Reassigned from {old_agent_id} to {new_agent.id}",
        )

        when = f"{appointment.date.isoformat()} at {appointment.start_time.strftime('%H:%M')}"
        self.dispatcher.notify(
            old_agent_id,
            NotificationType.OVERRIDE,
            "Appointment Reassigned",
            f"An admin moved your {when} viewing of {prop.title} to another agent. Reason: {reason}",
            related_id=appointment.id,
        )
        self.dispatcher.notify(
            new_agent.id,
            NotificationType.OVERRIDE,
            "Appointment Assigned",
            f"An admin assigned you the {when} viewing of {prop.title}. Reason: {reason}",
            related_id=appointment.id,
        )
        self.dispatcher.notify(
            appointment.customer_id,
            NotificationType.AGENT_CHANGE,
            "Agent Changed",
            f"{new_agent.name} will now conduct your {when} viewing of {prop.title}.",
            related_id=appointment.id,
        )
        logger.info(f"Override: appointment {appointment.id} {old_agent_id} -> {new_agent.id} by {actor_id}")
        return override
