"""Customer/agent messaging on confirmed appointments."""

import logging
import uuid
from typing import List

from ..core.errors import MessagingNotAllowedError, PermissionDeniedError
from ..storage.models import Appointment, AppointmentMessage, AppointmentStatus, User, UserRole
from ..storage.store import BookingStore

logger = logging.getLogger(__name__)

MESSAGING_STATUSES = frozenset({AppointmentStatus.ACCEPTED, AppointmentStatus.SCHEDULED})


def can_message(appointment: Appointment, customer: User, agent: User) -> bool:
    """True when the appointment is confirmed and both parties verified their phone."""
    return (
        appointment.status in MESSAGING_STATUSES
        and customer.sms_verified
        and agent.sms_verified
    )


class MessageService:
    """Appointment message threads, gated on every send."""

    def __init__(self, store: BookingStore, clock):
        self.store = store
        self.clock = clock

    def is_open(self, appointment: Appointment) -> bool:
        customer = self.store.get_user(appointment.customer_id)
        agent = self.store.get_user(appointment.agent_id)
        return can_message(appointment, customer, agent)

    def send(self, appointment: Appointment, sender_id: str, content: str) -> AppointmentMessage:
        if sender_id not in (appointment.customer_id, appointment.agent_id):
            raise PermissionDeniedError("Only the customer and agent can message on an appointment")
        if not content or not content.strip():
            raise MessagingNotAllowedError("Message is empty")
        if not self.is_open(appointment):
            logger.warning(f"Message on {appointment.id} refused: messaging not enabled")
            raise MessagingNotAllowedError()

        sender_role = UserRole.CUSTOMER if sender_id == appointment.customer_id else UserRole.AGENT
        message = AppointmentMessage(
            id=str(uuid.uuid4()),
            appointment_id=appointment.id,
            sender_id=sender_id,
            sender_role=sender_role,
            content=content.strip(),
            created_at=self.clock.now(),
        )
        return self.store.add_message(message)

    def thread(self, appointment: Appointment) -> List[AppointmentMessage]:
        return self.store.messages_for(appointment.id)
