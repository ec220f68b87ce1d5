"""Purchase-priority queues, one per property."""

import bisect
import logging
from typing import Optional, Dict, List, Tuple

from ..notifications.dispatcher import NotificationDispatcher, NotificationType
from ..storage.models import Appointment, AppointmentStatus
from ..storage.store import BookingStore

logger = logging.getLogger(__name__)

_CLOSING_STATUSES = (AppointmentStatus.SOLD, AppointmentStatus.RENTED)


class PriorityQueueEngine:
    """Decide which customer may buy a property.

    Every active appointment of a property sits in a sorted index keyed by
    ``(booking_attempt_timestamp, seq)``. The earliest entry whose customer
    has not declined holds purchase rights; a sold or rented appointment
    always leads. Callers run ``recompute`` inside the same critical
    section as the change that triggered it.
    """

    def __init__(self, store: BookingStore, dispatcher: NotificationDispatcher):
        self.store = store
        self.dispatcher = dispatcher
        self._index: Dict[str, List[Tuple[tuple, str]]] = {}
        self._leaders: Dict[str, Optional[str]] = {}

    def add(self, appointment: Appointment):
        entries = self._index.setdefault(appointment.property_id, [])
        entry = (appointment.priority_key, appointment.id)
        if entry not in entries:
            bisect.insort(entries, entry)

    def remove(self, appointment: Appointment):
        entries = self._index.get(appointment.property_id, [])
        entry = (appointment.priority_key, appointment.id)
        if entry in entries:
            entries.remove(entry)
        appointment.has_purchase_rights = False

    def queue(self, property_id: str) -> List[Appointment]:
        """Active appointments in purchase-priority order."""
        return [self.store.appointments[i] for _, i in self._index.get(property_id, [])]

    def position(self, property_id: str, customer_id: str) -> int:
        """Zero-based rank of the customer's earliest appointment; -1 when absent."""
        for rank, appointment in enumerate(self.queue(property_id)):
            if appointment.customer_id == customer_id:
                return rank
        return -1

    def leader(self, property_id: str) -> Optional[Appointment]:
        """The appointment holding purchase rights.

        Waitlisted appointments never lead. Once the property is closed
        only the sold or rented appointment can lead, if there is one.
        """
        queue = self.queue(property_id)
        for appointment in queue:
            if appointment.status in _CLOSING_STATUSES:
                return appointment
        if self.store.get_property(property_id).is_closed:
            return None
        for appointment in queue:
            if appointment.status == AppointmentStatus.QUEUED:
                continue
            if not appointment.purchase_declined:
                return appointment
        return None

    def recompute(self, property_id: str) -> Optional[Appointment]:
        """Re-derive purchase rights and tell a newly promoted leader."""
        leader = self.leader(property_id)
        for appointment in self.queue(property_id):
            appointment.has_purchase_rights = leader is not None and appointment.id == leader.id

        previous_id = self._leaders.get(property_id)
        new_id = leader.id if leader else None
        self._leaders[property_id] = new_id

        if leader and previous_id and previous_id != new_id:
            prop = self.store.get_property(property_id)
            self.dispatcher.notify(
                leader.customer_id,
                NotificationType.PRIORITY_PROMOTED,
                "Purchase Rights Granted",
                f"You now have priority purchase rights for {prop.title}.",
                related_id=leader.id,
            )
            logger.info(f"Purchase rights for {property_id} moved {previous_id} -> {new_id}")
        return leader
