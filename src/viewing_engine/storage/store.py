"""In-memory aggregate store with the indexes the engine reads from."""

import itertools
import logging
from datetime import date
from typing import Optional, Dict, List, Tuple, Iterable

from ..core.errors import NotFoundError
from .models import (
    Agent,
    Appointment,
    AppointmentMessage,
    Property,
    SlotKey,
    User,
)

logger = logging.getLogger(__name__)


class BookingStore:
    """Owns every entity the engine mutates.

    Besides the primary maps it keeps three insertion-ordered indexes,
    updated as appointments are added or move between agents:
    property -> appointments, (agent, date) -> appointments and
    slot key -> appointments.
    """

    def __init__(self):
        self.properties: Dict[str, Property] = {}
        self.users: Dict[str, User] = {}
        self.appointments: Dict[str, Appointment] = {}
        self.messages: Dict[str, List[AppointmentMessage]] = {}

        self._by_property: Dict[str, List[str]] = {}
        self._by_agent_date: Dict[Tuple[str, date], List[str]] = {}
        self._by_slot: Dict[SlotKey, List[str]] = {}
        self._seq = itertools.count(1)

    # Directory

    def add_user(self, user: User) -> User:
        self.users[user.id] = user
        return user

    def add_agent(self, agent: Agent) -> Agent:
        self.users[agent.id] = agent
        return agent

    def add_property(self, prop: Property) -> Property:
        self.properties[prop.id] = prop
        return prop

    def lookup(self, user_id: str) -> Optional[User]:
        """Directory lookup; None when unknown."""
        return self.users.get(user_id)

    def get_user(self, user_id: str) -> User:
        user = self.users.get(user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def get_agent(self, agent_id: str) -> Agent:
        agent = self.users.get(agent_id)
        if not isinstance(agent, Agent):
            raise NotFoundError(f"Agent {agent_id} not found")
        return agent

    def get_property(self, property_id: str) -> Property:
        prop = self.properties.get(property_id)
        if not prop:
            raise NotFoundError(f"Property {property_id} not found")
        return prop

    def get_appointment(self, appointment_id: str) -> Appointment:
        appointment = self.appointments.get(appointment_id)
        if not appointment:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        return appointment

    @property
    def agents(self) -> List[Agent]:
        return [u for u in self.users.values() if isinstance(u, Agent)]

    # Appointments

    def next_seq(self) -> int:
        return next(self._seq)

    def add_appointment(self, appointment: Appointment) -> Appointment:
        if not appointment.seq:
            appointment.seq = self.next_seq()
        self.appointments[appointment.id] = appointment
        self._by_property.setdefault(appointment.property_id, []).append(appointment.id)
        self._index_agent(appointment)
        return appointment

    def _index_agent(self, appointment: Appointment):
        self._by_agent_date.setdefault((appointment.agent_id, appointment.date), []).append(appointment.id)
        self._by_slot.setdefault(appointment.slot_key, []).append(appointment.id)

    def _unindex_agent(self, appointment: Appointment):
        day = self._by_agent_date.get((appointment.agent_id, appointment.date), [])
        if appointment.id in day:
            day.remove(appointment.id)
        slot = self._by_slot.get(appointment.slot_key, [])
        if appointment.id in slot:
            slot.remove(appointment.id)

    def move_to_agent(self, appointment: Appointment, new_agent_id: str):
        """Re-home an appointment under a different agent, keeping indexes in step."""
        self._unindex_agent(appointment)
        appointment.agent_id = new_agent_id
        self._index_agent(appointment)

    def _resolve(self, ids: Iterable[str]) -> List[Appointment]:
        return [self.appointments[i] for i in ids]

    def for_property(self, property_id: str) -> List[Appointment]:
        return self._resolve(self._by_property.get(property_id, []))

    def for_agent_on(self, agent_id: str, on_date: date) -> List[Appointment]:
        return self._resolve(self._by_agent_date.get((agent_id, on_date), []))

    def for_slot(self, key: SlotKey) -> List[Appointment]:
        return self._resolve(self._by_slot.get(key, []))

    def for_customer(self, customer_id: str) -> List[Appointment]:
        return [a for a in self.appointments.values() if a.customer_id == customer_id]

    # Messages

    def add_message(self, message: AppointmentMessage) -> AppointmentMessage:
        self.messages.setdefault(message.appointment_id, []).append(message)
        return message

    def messages_for(self, appointment_id: str) -> List[AppointmentMessage]:
        return list(self.messages.get(appointment_id, []))
