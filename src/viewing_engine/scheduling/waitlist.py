"""Waitlists for exclusive-property slots."""

import logging
from typing import Optional, Dict, List

from ..notifications.dispatcher import NotificationDispatcher, NotificationType
from ..storage.models import Appointment, AppointmentStatus, SlotKey
from ..storage.store import BookingStore
from .lifecycle import transition, book_slot

logger = logging.getLogger(__name__)


class WaitlistManager:
    """Ordered queues of ``queued`` appointments, one per slot key.

    The slot's primary holder is position 1; queued entries are numbered
    from 2 in arrival order. Arrival order is fixed when the entry joins
    (the engine serialises joins per slot), so equal timestamps resolve
    FIFO.
    """

    def __init__(self, store: BookingStore, dispatcher: NotificationDispatcher, clock):
        self.store = store
        self.dispatcher = dispatcher
        self.clock = clock
        self._queues: Dict[SlotKey, List[str]] = {}

    def entries(self, key: SlotKey) -> List[Appointment]:
        return [self.store.appointments[i] for i in self._queues.get(key, [])]

    def join(self, appointment: Appointment) -> int:
        """Append a queued appointment and return its position."""
        queue = self._queues.setdefault(appointment.slot_key, [])
        queue.append(appointment.id)
        appointment.queue_position = len(queue) + 1
        logger.info(
            f"Appointment {appointment.id} waitlisted at position {appointment.queue_position} "
            f"for {appointment.property_id} {appointment.date} {appointment.start_time}"
        )
        return appointment.queue_position

    def remove(self, appointment: Appointment) -> bool:
        """Drop an entry and close the gap behind it."""
        queue = self._queues.get(appointment.slot_key, [])
        if appointment.id not in queue:
            return False
        queue.remove(appointment.id)
        appointment.queue_position = None
        self._renumber(appointment.slot_key)
        return True

    def _renumber(self, key: SlotKey):
        for index, appointment_id in enumerate(self._queues.get(key, [])):
            self.store.appointments[appointment_id].queue_position = index + 2

    def promote(self, key: SlotKey) -> Optional[Appointment]:
        """Move the head of the queue into the slot.

        The promoted appointment becomes ``pending`` with viewing rights and
        takes the slot booking; everyone behind moves up one place.
        """
        queue = self._queues.get(key, [])
        if not queue:
            return None

        appointment = self.store.appointments[queue[0]]
        transition(appointment, AppointmentStatus.PENDING)
        queue.pop(0)

        appointment.promoted_from_position = appointment.queue_position
        appointment.queue_position = None
        appointment.has_viewing_rights = True
        appointment.promoted_at = self.clock.now()
        book_slot(self.store, appointment)
        self._renumber(key)

        prop = self.store.get_property(key.property_id)
        self.dispatcher.notify(
            appointment.customer_id,
            NotificationType.QUEUE_PROMOTED,
            "You're Up!",
            f"A slot opened for {prop.title} on {key.date.isoformat()} at "
            f"{key.start_time.strftime('%H:%M')}. Your viewing is now awaiting agent confirmation.",
            related_id=appointment.id,
        )
        self.dispatcher.notify(
            appointment.agent_id,
            NotificationType.BOOKING_PENDING,
            "Waitlisted Booking Promoted",
            f"A waitlisted customer now holds your {key.start_time.strftime('%H:%M')} viewing of {prop.title}.",
            related_id=appointment.id,
        )
        logger.info(f"Promoted appointment {appointment.id} from waitlist position {appointment.promoted_from_position}")
        return appointment

    def promote_if_vacant(self, key: SlotKey) -> Optional[Appointment]:
        """Promote the head of the queue unless someone still holds the slot."""
        if any(a.is_active and a.status != AppointmentStatus.QUEUED for a in self.store.for_slot(key)):
            return None
        return self.promote(key)
