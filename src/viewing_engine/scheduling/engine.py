"""BookingEngine: the single owner of booking state.

Every public operation takes the per-agent and per-property locks it
touches, re-validates inside them, mutates, and only then releases the
notifications it produced.
"""

import logging
import uuid
from contextlib import contextmanager
from datetime import date, datetime, time
from typing import Optional, Callable, Iterable, Iterator, List, Union

from ..core.clock import SystemClock, truncate_to_second
from ..core.config import EngineConfig
from ..core.errors import NotFoundError, ViewingEngineError
from ..messaging.gate import MessageService
from ..notifications.alerts import AdminAlert, AlertManager, AlertType, AssignmentOverride
from ..notifications.dispatcher import NotificationDispatcher, Notification
from ..storage.models import (
    Agent,
    AgentRating,
    Appointment,
    AppointmentMessage,
    AvailabilitySlot,
    Property,
    PropertyStatus,
    SlotKey,
    UnavailablePeriod,
    User,
)
from ..storage.store import BookingStore
from .availability import AvailabilityResolver, AvailableStartTime
from .conflicts import ConflictDetector
from .lifecycle import AppointmentLifecycle
from .locks import KeyedLockManager, agent_key, property_key
from .override import OverrideService
from .priority import PriorityQueueEngine
from .waitlist import WaitlistManager

logger = logging.getLogger(__name__)


class BookingEngine:
    """Booking arbitration over one in-memory store."""

    def __init__(
        self,
        store: Optional[BookingStore] = None,
        config: Optional[EngineConfig] = None,
        clock=None,
        sinks: Optional[List] = None,
    ):
        self.store = store or BookingStore()
        self.config = config or EngineConfig()
        self.clock = clock or SystemClock()
        self.dispatcher = NotificationDispatcher(sinks=sinks, clock=self.clock)
        self.alerts = AlertManager(clock=self.clock)
        self.locks = KeyedLockManager()

        self.conflicts = ConflictDetector(self.store)
        self.resolver = AvailabilityResolver(self.store, self.conflicts, self.config)
        self.waitlist = WaitlistManager(self.store, self.dispatcher, self.clock)
        self.priority = PriorityQueueEngine(self.store, self.dispatcher)
        self.lifecycle = AppointmentLifecycle(
            self.store,
            self.resolver,
            self.conflicts,
            self.waitlist,
            self.priority,
            self.dispatcher,
            self.clock,
            self.config,
        )
        self.overrides = OverrideService(
            self.store, self.conflicts, self.waitlist, self.priority, self.alerts, self.dispatcher
        )
        self.messages = MessageService(self.store, self.clock)

    @contextmanager
    def _locked(self, keys_fn: Callable[[], Iterable[str]]) -> Iterator[None]:
        """Hold the locks named by ``keys_fn`` and buffer notifications.

        The keys are computed again once the locks are held; if another
        operation moved the appointment in between (a new agent, say) the
        locks are dropped and taken again for the new keys.
        """
        while True:
            keys = set(keys_fn())
            with self.locks.hold(*keys):
                if set(keys_fn()) <= keys:
                    with self.dispatcher.deferred():
                        yield
                    return

    def _appointment_keys(self, appointment: Appointment) -> Callable[[], List[str]]:
        return lambda: [agent_key(appointment.agent_id), property_key(appointment.property_id)]

    # Directory

    def add_user(self, user: User) -> User:
        return self.store.add_user(user)

    def add_agent(self, agent: Agent) -> Agent:
        return self.store.add_agent(agent)

    def add_property(self, prop: Property) -> Property:
        return self.store.add_property(prop)

    def lookup(self, user_id: str) -> Optional[User]:
        return self.store.lookup(user_id)

    def get_appointment(self, appointment_id: str) -> Appointment:
        return self.store.get_appointment(appointment_id)

    # Availability

    def resolve_available_start_times(
        self,
        agent_id: str,
        as_of: Optional[Union[date, datetime]] = None,
        property_id: Optional[str] = None,
    ) -> List[AvailableStartTime]:
        agent = self.store.get_agent(agent_id)
        prop = self.store.get_property(property_id) if property_id else None
        if isinstance(as_of, datetime):
            today = as_of.date()
        else:
            today = as_of or self.clock.today()

        keys = [agent_key(agent.id)] + ([property_key(prop.id)] if prop else [])
        with self.locks.hold(*keys):
            return self.resolver.start_times(agent, today, prop=prop)

    def add_availability_slot(
        self,
        agent_id: str,
        on_date: date,
        start_time: time,
        end_time: Optional[time] = None,
    ) -> AvailabilitySlot:
        agent = self.store.get_agent(agent_id)
        if end_time is not None and end_time <= start_time:
            raise ViewingEngineError("Slot must end after it starts")
        with self.locks.hold(agent_key(agent.id)):
            if agent.find_slot(on_date, start_time):
                raise ViewingEngineError(f"Agent {agent.id} already has a slot at {start_time.strftime('%H:%M')}")
            slot = AvailabilitySlot(id=str(uuid.uuid4()), date=on_date, start_time=start_time, end_time=end_time)
            agent.availability.append(slot)
        return slot

    def agents_free_for_slot(
        self,
        on_date: date,
        start_time: time,
        end_time: Optional[time] = None,
        exclude_appointment_id: Optional[str] = None,
    ) -> List[Agent]:
        """Agents with no vacation, block or overlapping viewing at that time."""
        free = []
        for agent in self.store.agents:
            if agent.is_on_vacation:
                continue
            if any(p.covers(on_date, start_time) for p in agent.unavailable_periods):
                continue
            if self.conflicts.has_conflict(agent.id, on_date, start_time, end_time, exclude_appointment_id):
                continue
            free.append(agent)
        return free

    def available_agents_for_customer(self, customer_id: str) -> List[Agent]:
        """Agents a customer may pick: not on vacation and not blacklisted by them."""
        customer = self.store.get_user(customer_id)
        return [
            agent for agent in self.store.agents
            if not agent.is_on_vacation and agent.id not in customer.blacklisted_agent_ids
        ]

    def toggle_vacation(self, agent_id: str) -> bool:
        agent = self.store.get_agent(agent_id)
        with self.locks.hold(agent_key(agent.id)):
            agent.is_on_vacation = not agent.is_on_vacation
        logger.info(f"Agent {agent.id} vacation mode {'on' if agent.is_on_vacation else 'off'}")
        return agent.is_on_vacation

    def add_unavailable_period(
        self,
        agent_id: str,
        on_date: date,
        start_time: time,
        end_time: time,
        reason: str = "",
    ) -> UnavailablePeriod:
        agent = self.store.get_agent(agent_id)
        if end_time <= start_time:
            raise ViewingEngineError("Unavailable period must end after it starts")
        period = UnavailablePeriod(
            id=str(uuid.uuid4()),
            date=on_date,
            start_time=start_time,
            end_time=end_time,
            reason=reason,
        )
        with self.locks.hold(agent_key(agent.id)):
            agent.unavailable_periods.append(period)
        return period

    def remove_unavailable_period(self, agent_id: str, period_id: str) -> UnavailablePeriod:
        agent = self.store.get_agent(agent_id)
        with self.locks.hold(agent_key(agent.id)):
            for period in agent.unavailable_periods:
                if period.id == period_id:
                    agent.unavailable_periods.remove(period)
                    return period
        raise NotFoundError(f"Unavailable period {period_id} not found")

    # Booking

    def create_booking(
        self,
        property_id: str,
        customer_id: str,
        agent_id: str,
        on_date: date,
        start_time: time,
        attempt_timestamp: Optional[datetime] = None,
    ) -> Appointment:
        """Book a viewing, queueing behind the current holder on exclusive listings.

        Raises SlotUnavailableError when the slot was taken since it was
        shown to the customer; callers re-resolve and pick again.
        """
        prop = self.store.get_property(property_id)
        customer = self.store.get_user(customer_id)
        agent = self.store.get_agent(agent_id)
        attempt = truncate_to_second(attempt_timestamp or self.clock.now())

        with self._locked(lambda: [agent_key(agent.id), property_key(prop.id)]):
            appointment = self.lifecycle.create(prop, customer, agent, on_date, start_time, attempt)
        return appointment

    def accept_appointment(self, appointment_id: str) -> Appointment:
        appointment = self.store.get_appointment(appointment_id)
        with self._locked(self._appointment_keys(appointment)):
            return self.lifecycle.accept(appointment)

    def reject_appointment(self, appointment_id: str, reason: Optional[str] = None) -> Appointment:
        appointment = self.store.get_appointment(appointment_id)
        with self._locked(self._appointment_keys(appointment)):
            return self.lifecycle.reject(appointment, reason)

    def cancel_appointment(self, appointment_id: str) -> Appointment:
        appointment = self.store.get_appointment(appointment_id)
        with self._locked(self._appointment_keys(appointment)):
            return self.lifecycle.cancel(appointment)

    def mark_done(self, appointment_id: str) -> Appointment:
        appointment = self.store.get_appointment(appointment_id)
        with self._locked(self._appointment_keys(appointment)):
            return self.lifecycle.mark_done(appointment)

    def decline_purchase(self, appointment_id: str) -> Appointment:
        appointment = self.store.get_appointment(appointment_id)
        with self._locked(self._appointment_keys(appointment)):
            return self.lifecycle.decline_purchase(appointment)

    def rate_agent(self, appointment_id: str, customer_id: str, rating: int, comment: str = "") -> AgentRating:
        """Rate the agent of a finished viewing; once per appointment."""
        appointment = self.store.get_appointment(appointment_id)
        customer = self.store.get_user(customer_id)
        with self._locked(self._appointment_keys(appointment)):
            return self.lifecycle.rate_agent(appointment, customer, rating, comment)

    def mark_sold_or_rented(
        self,
        property_id: str,
        status: Union[PropertyStatus, str],
        actor_agent_id: str,
        appointment_id: Optional[str] = None,
        sale_price: Optional[float] = None,
    ) -> Property:
        prop = self.store.get_property(property_id)
        agent = self.store.get_agent(actor_agent_id)
        appointment = self.store.get_appointment(appointment_id) if appointment_id else None
        if isinstance(status, str):
            status = PropertyStatus(status)

        def keys():
            agents = {a.agent_id for a in self.store.for_property(prop.id)}
            agents.add(agent.id)
            return [property_key(prop.id)] + [agent_key(a) for a in agents]

        with self._locked(keys):
            self.lifecycle.mark_sold_or_rented(prop, status, agent, appointment, sale_price)
        return prop

    # Agent changes

    def override_agent(
        self,
        appointment_id: str,
        new_agent_id: str,
        reason: str,
        actor_id: str,
    ) -> AssignmentOverride:
        appointment = self.store.get_appointment(appointment_id)
        new_agent = self.store.get_agent(new_agent_id)

        def keys():
            return self._appointment_keys(appointment)() + [agent_key(new_agent.id)]

        with self._locked(keys):
            return self.overrides.reassign(appointment, new_agent, reason, actor_id)

    def reassign_after_rejection(
        self,
        appointment_id: str,
        new_agent_id: Optional[str] = None,
    ) -> Optional[Appointment]:
        appointment = self.store.get_appointment(appointment_id)
        new_agent = self.store.get_agent(new_agent_id) if new_agent_id else None

        # The replacement is chosen among all agents, so all of them are held
        def keys():
            return [property_key(appointment.property_id)] + [agent_key(a.id) for a in self.store.agents]

        with self._locked(keys):
            return self.lifecycle.reassign_after_rejection(appointment, new_agent)

    def approve_new_agent(self, appointment_id: str) -> Appointment:
        appointment = self.store.get_appointment(appointment_id)
        with self._locked(self._appointment_keys(appointment)):
            return self.lifecycle.approve_new_agent(appointment)

    def select_different_agent(self, appointment_id: str, new_agent_id: str) -> Appointment:
        appointment = self.store.get_appointment(appointment_id)
        new_agent = self.store.get_agent(new_agent_id)

        def keys():
            return self._appointment_keys(appointment)() + [agent_key(new_agent.id)]

        with self._locked(keys):
            return self.lifecycle.select_different_agent(appointment, new_agent)

    # Queues

    def get_waitlist(self, property_id: str, agent_id: str, on_date: date, start_time: time) -> List[Appointment]:
        """Queued appointments behind the slot's holder, in promotion order."""
        key = SlotKey(property_id, agent_id, on_date, start_time)
        with self.locks.hold(agent_key(agent_id), property_key(property_id)):
            return self.waitlist.entries(key)

    def get_purchase_priority_queue(self, property_id: str) -> List[Appointment]:
        self.store.get_property(property_id)
        with self.locks.hold(property_key(property_id)):
            return self.priority.queue(property_id)

    def priority_position(self, property_id: str, customer_id: str) -> int:
        self.store.get_property(property_id)
        with self.locks.hold(property_key(property_id)):
            return self.priority.position(property_id, customer_id)

    # Messaging

    def verify_sms(self, user_id: str) -> User:
        """Mark a user's phone as verified. Stands in for a real SMS round trip."""
        user = self.store.get_user(user_id)
        user.sms_verified = True
        logger.info(f"SMS verified for {user_id}")
        return user

    def can_message(self, appointment_id: str) -> bool:
        appointment = self.store.get_appointment(appointment_id)
        return self.messages.is_open(appointment)

    def send_message(self, appointment_id: str, sender_id: str, content: str) -> AppointmentMessage:
        appointment = self.store.get_appointment(appointment_id)
        return self.messages.send(appointment, sender_id, content)

    def get_messages(self, appointment_id: str) -> List[AppointmentMessage]:
        appointment = self.store.get_appointment(appointment_id)
        return self.messages.thread(appointment)

    # Notifications and alerts

    def notifications_for(self, user_id: str, unread_only: bool = False) -> List[Notification]:
        inbox = self.dispatcher.inbox
        return inbox.for_user(user_id, unread_only) if inbox else []

    def mark_notification_read(self, user_id: str, notification_id: str) -> Notification:
        inbox = self.dispatcher.inbox
        notification = inbox.mark_read(notification_id, user_id) if inbox else None
        if notification is None:
            raise NotFoundError(f"Notification {notification_id} not found")
        return notification

    def raise_alert(
        self,
        alert_type: Union[AlertType, str],
        description: str,
        appointment_id: Optional[str] = None,
    ) -> AdminAlert:
        if isinstance(alert_type, str):
            alert_type = AlertType(alert_type)
        customer_id = agent_id = None
        if appointment_id:
            appointment = self.store.get_appointment(appointment_id)
            customer_id = appointment.customer_id
            agent_id = appointment.agent_id
        return self.alerts.raise_alert(alert_type, description, appointment_id, customer_id, agent_id)

    def resolve_alert(self, alert_id: str, resolution: str, resolved_by: str) -> AdminAlert:
        return self.alerts.resolve_alert(alert_id, resolution, resolved_by)
