"""Appointment state machine and the booking operations built on it."""

import logging
import uuid
from datetime import date, datetime, time
from typing import Optional, Dict, FrozenSet, List

from ..core.config import EngineConfig
from ..core.errors import (
    AgentConflictError,
    InvalidTransitionError,
    PermissionDeniedError,
    PropertyAlreadySoldError,
    SlotUnavailableError,
)
from ..notifications.dispatcher import NotificationDispatcher, NotificationType
from ..storage.models import (
    Agent,
    AgentRating,
    Appointment,
    AppointmentStatus,
    CLOSED_STATUSES,
    FINISHED_STATUSES,
    Property,
    PropertyStatus,
    SlotKey,
    User,
)
from ..storage.store import BookingStore

logger = logging.getLogger(__name__)

S = AppointmentStatus

LATEST_RATINGS_KEPT = 10

TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    S.QUEUED: frozenset({S.PENDING, S.CANCELLED}),
    S.PENDING: frozenset({S.ACCEPTED, S.REJECTED, S.CANCELLED}),
    S.PENDING_APPROVAL: frozenset({S.ACCEPTED, S.PENDING, S.CANCELLED}),
    S.ACCEPTED: frozenset({S.DONE, S.REJECTED, S.SOLD, S.RENTED, S.CANCELLED}),
    S.SCHEDULED: frozenset({S.DONE, S.REJECTED, S.SOLD, S.RENTED, S.CANCELLED}),
    S.DONE: frozenset({S.SOLD, S.RENTED}),
    S.COMPLETED: frozenset({S.SOLD, S.RENTED}),
    S.REJECTED: frozenset({S.PENDING_APPROVAL, S.PENDING}),
    S.CANCELLED: frozenset(),
    S.SOLD: frozenset(),
    S.RENTED: frozenset(),
}


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def check_transition(appointment: Appointment, target: AppointmentStatus):
    if not can_transition(appointment.status, target):
        raise InvalidTransitionError(
            f"Appointment {appointment.id} cannot move from "
            f"'{appointment.status.value}' to '{target.value}'"
        )


def transition(appointment: Appointment, target: AppointmentStatus) -> Appointment:
    """Move an appointment to ``target`` or raise InvalidTransitionError untouched."""
    check_transition(appointment, target)
    logger.debug(f"Appointment {appointment.id}: {appointment.status.value} -> {target.value}")
    appointment.status = target
    return appointment


def book_slot(store: BookingStore, appointment: Appointment) -> bool:
    """Mark the agent's matching slot as held by the appointment, if it is free."""
    agent = store.users.get(appointment.agent_id)
    if not isinstance(agent, Agent):
        return False
    slot = agent.find_slot(appointment.date, appointment.start_time)
    if slot is None or slot.is_booked:
        return False
    slot.is_booked = True
    slot.booking_id = appointment.id
    return True


def release_slot(store: BookingStore, appointment: Appointment) -> bool:
    """Free the slot the appointment holds, handing it to another occupant if one remains."""
    agent = store.users.get(appointment.agent_id)
    if not isinstance(agent, Agent):
        return False
    slot = agent.find_slot(appointment.date, appointment.start_time)
    if slot is None or slot.booking_id != appointment.id:
        return False

    slot.is_booked = False
    slot.booking_id = None
    for other in store.for_agent_on(agent.id, appointment.date):
        if (other.id != appointment.id and other.is_active
                and other.status != S.QUEUED and other.start_time == appointment.start_time):
            slot.is_booked = True
            slot.booking_id = other.id
            break
    return True


class AppointmentLifecycle:
    """State changes of appointments and their knock-on effects.

    Methods validate everything before mutating anything, so a raised
    error leaves the store untouched. Locking and notification deferral
    belong to the caller (``BookingEngine``).
    """

    def __init__(
        self,
        store: BookingStore,
        resolver,
        conflicts,
        waitlist,
        priority,
        dispatcher: NotificationDispatcher,
        clock,
        config: EngineConfig,
    ):
        self.store = store
        self.resolver = resolver
        self.conflicts = conflicts
        self.waitlist = waitlist
        self.priority = priority
        self.dispatcher = dispatcher
        self.clock = clock
        self.config = config

    # Booking

    def create(
        self,
        prop: Property,
        customer: User,
        agent: Agent,
        on_date: date,
        start_time: time,
        attempt_timestamp: datetime,
    ) -> Appointment:
        if prop.is_closed:
            raise PropertyAlreadySoldError(f"Property {prop.id} is already {prop.status.value}")

        reason = self.resolver.unbookable_reason(agent, on_date, start_time, self.clock.today(), prop)
        if reason:
            logger.warning(f"Booking refused for {customer.id} on {agent.id} {on_date} {start_time}: {reason}")
            raise SlotUnavailableError(f"Slot no longer available: {reason}")

        slot = agent.find_slot(on_date, start_time)
        key = SlotKey(prop.id, agent.id, on_date, start_time)
        key_holders = [a for a in self.store.for_slot(key) if a.status not in CLOSED_STATUSES]
        queued = prop.is_exclusive and bool(key_holders)

        appointment = Appointment(
            id=str(uuid.uuid4()),
            property_id=prop.id,
            customer_id=customer.id,
            agent_id=agent.id,
            date=on_date,
            start_time=start_time,
            end_time=slot.end_time if slot else None,
            status=S.QUEUED if queued else S.PENDING,
            has_viewing_rights=not queued,
            has_purchase_rights=False,
            booking_attempt_timestamp=attempt_timestamp,
            created_at=self.clock.now(),
            was_high_demand_slot=bool(key_holders),
        )
        self.store.add_appointment(appointment)

        if queued:
            self.waitlist.join(appointment)
        else:
            book_slot(self.store, appointment)

        if prop.first_viewer_customer_id is None:
            prop.first_viewer_customer_id = customer.id
            prop.first_viewer_timestamp = attempt_timestamp
        if prop.status == PropertyStatus.AVAILABLE:
            prop.status = PropertyStatus.PENDING

        self.priority.add(appointment)
        leader = self.priority.recompute(prop.id)
        self._announce_booking(prop, appointment, leader)
        logger.info(
            f"Booked {appointment.id}: {customer.id} with {agent.id} for {prop.id} "
            f"on {on_date} {start_time} ({appointment.status.value})"
        )
        return appointment

    def _announce_booking(self, prop: Property, appointment: Appointment, leader: Optional[Appointment]):
        when = f"{appointment.date.isoformat()} at {appointment.start_time.strftime('%H:%M')}"
        if appointment.status == S.QUEUED:
            self.dispatcher.notify(
                appointment.customer_id,
                NotificationType.SLOT_WAITLISTED,
                "Added to Waitlist",
                f"The {when} viewing of {prop.title} is taken. You are number "
                f"{appointment.queue_position} in line and will be notified if it opens up.",
                related_id=appointment.id,
            )
        else:
            if appointment.was_high_demand_slot:
                self.dispatcher.notify(
                    appointment.customer_id,
                    NotificationType.HIGH_DEMAND_WARNING,
                    "High Demand Slot",
                    f"Other customers also booked the {when} viewing of {prop.title}.",
                    related_id=appointment.id,
                )
            self.dispatcher.notify(
                appointment.agent_id,
                NotificationType.BOOKING_NEW,
                "New Booking",
                f"You have a new property viewing scheduled for {prop.title} on {when}.",
                related_id=appointment.id,
            )

        if leader is not None and leader.id == appointment.id:
            self.dispatcher.notify(
                appointment.customer_id,
                NotificationType.PURCHASE_RIGHTS,
                "Purchase Rights",
                f"You are first in line to purchase {prop.title}.",
                related_id=prop.id,
            )
        else:
            self.dispatcher.notify(
                appointment.customer_id,
                NotificationType.VIEWING_ONLY,
                "Viewing Rights Notice",
                f"Another customer has priority purchase rights for {prop.title}. You may view "
                f"the property, but cannot purchase unless they decline.",
                related_id=prop.id,
            )

    # Agent responses

    def accept(self, appointment: Appointment) -> Appointment:
        prop = self.store.get_property(appointment.property_id)
        if prop.is_closed:
            raise PropertyAlreadySoldError(f"Property {prop.id} is already {prop.status.value}")
        if appointment.status != S.PENDING:
            raise InvalidTransitionError(
                f"Only pending appointments can be accepted (is '{appointment.status.value}')"
            )
        transition(appointment, S.ACCEPTED)
        self.dispatcher.notify(
            appointment.customer_id,
            NotificationType.BOOKING_ACCEPTED,
            "Booking Accepted",
            f"Your viewing of {prop.title} on {appointment.date.isoformat()} has been confirmed.",
            related_id=appointment.id,
        )
        return appointment

    def approve_new_agent(self, appointment: Appointment) -> Appointment:
        prop = self.store.get_property(appointment.property_id)
        if prop.is_closed:
            raise PropertyAlreadySoldError(f"Property {prop.id} is already {prop.status.value}")
        if appointment.status != S.PENDING_APPROVAL:
            raise InvalidTransitionError("Appointment is not awaiting approval of a new agent")
        transition(appointment, S.ACCEPTED)
        self.dispatcher.notify(
            appointment.agent_id,
            NotificationType.BOOKING_ACCEPTED,
            "Assignment Approved",
            f"The customer approved you for the viewing of {prop.title}.",
            related_id=appointment.id,
        )
        return appointment

    def reject(self, appointment: Appointment, reason: Optional[str] = None) -> Appointment:
        check_transition(appointment, S.REJECTED)
        prop = self.store.get_property(appointment.property_id)

        transition(appointment, S.REJECTED)
        appointment.rejection_reason = reason
        appointment.has_viewing_rights = False
        self._vacate(appointment, prop)
        self.priority.remove(appointment)
        self.priority.recompute(prop.id)

        self.dispatcher.notify(
            appointment.customer_id,
            NotificationType.BOOKING_REJECTED,
            "Booking Declined",
            f"Your agent could not take the viewing of {prop.title}"
            + (f": {reason}" if reason else ".")
            + " You can choose a different agent.",
            related_id=appointment.id,
        )
        logger.info(f"Appointment {appointment.id} rejected by {appointment.agent_id}")
        return appointment

    def cancel(self, appointment: Appointment) -> Appointment:
        check_transition(appointment, S.CANCELLED)
        prop = self.store.get_property(appointment.property_id)

        was_queued = appointment.status == S.QUEUED
        transition(appointment, S.CANCELLED)
        appointment.has_viewing_rights = False
        if was_queued:
            self.waitlist.remove(appointment)
        else:
            self._vacate(appointment, prop)
        self.priority.remove(appointment)
        self.priority.recompute(prop.id)

        for user_id in (appointment.customer_id, appointment.agent_id):
            self.dispatcher.notify(
                user_id,
                NotificationType.APPOINTMENT_CANCELLED,
                "Appointment Cancelled",
                f"The {appointment.date.isoformat()} viewing of {prop.title} was cancelled.",
                related_id=appointment.id,
            )
        logger.info(f"Appointment {appointment.id} cancelled")
        return appointment

    def mark_done(self, appointment: Appointment) -> Appointment:
        check_transition(appointment, S.DONE)
        prop = self.store.get_property(appointment.property_id)
        transition(appointment, S.DONE)
        self.dispatcher.notify(
            appointment.customer_id,
            NotificationType.VIEWING_DONE,
            "Viewing Complete",
            f"Your viewing of {prop.title} is complete.",
            related_id=appointment.id,
        )
        return appointment

    def decline_purchase(self, appointment: Appointment) -> Appointment:
        if not appointment.is_active or appointment.status in CLOSED_STATUSES - {S.DONE, S.COMPLETED}:
            raise InvalidTransitionError("Only active appointments can decline purchase rights")
        if appointment.purchase_declined:
            raise InvalidTransitionError("Purchase rights were already declined")
        appointment.purchase_declined = True
        self.priority.recompute(appointment.property_id)
        return appointment

    def _vacate(self, appointment: Appointment, prop: Property):
        """Release the appointment's slot and let the waitlist move up."""
        release_slot(self.store, appointment)
        if prop.is_exclusive:
            self.waitlist.promote_if_vacant(appointment.slot_key)

    # Sale

    def mark_sold_or_rented(
        self,
        prop: Property,
        status: PropertyStatus,
        agent: Agent,
        appointment: Optional[Appointment] = None,
        sale_price: Optional[float] = None,
    ) -> List[Appointment]:
        """Close the listing; returns the appointments cancelled as a result."""
        if prop.is_closed:
            raise PropertyAlreadySoldError(f"Property {prop.id} is already {prop.status.value}")
        if status not in (PropertyStatus.SOLD, PropertyStatus.RENTED):
            raise InvalidTransitionError(f"Cannot close a listing as '{status.value}'")

        closing = S.SOLD if status == PropertyStatus.SOLD else S.RENTED
        if appointment is not None:
            if appointment.property_id != prop.id:
                raise InvalidTransitionError(
                    f"Appointment {appointment.id} does not belong to property {prop.id}"
                )
            check_transition(appointment, closing)

        if appointment is not None:
            transition(appointment, closing)

        cancelled = []
        for other in self.store.for_property(prop.id):
            if appointment is not None and other.id == appointment.id:
                continue
            if other.status in CLOSED_STATUSES:
                continue
            was_queued = other.status == S.QUEUED
            transition(other, S.CANCELLED)
            other.has_viewing_rights = False
            if was_queued:
                self.waitlist.remove(other)
            else:
                release_slot(self.store, other)
            self.priority.remove(other)
            cancelled.append(other)

        prop.status = status
        prop.sold_by_agent_id = agent.id
        prop.sold_date = self.clock.today()
        prop.sale_price = sale_price
        agent.sales_count += 1
        if prop.id not in agent.sold_properties:
            agent.sold_properties.append(prop.id)
        self.priority.recompute(prop.id)

        verb = "sold" if status == PropertyStatus.SOLD else "rented"
        for other in cancelled:
            self.dispatcher.notify(
                other.customer_id,
                NotificationType.PROPERTY_SOLD,
                f"Property {verb.title()}",
                f"{prop.title} has been {verb}. Your viewing on {other.date.isoformat()} was cancelled.",
                related_id=other.id,
            )
        logger.info(f"Property {prop.id} {verb} by {agent.id}; {len(cancelled)} appointment(s) cancelled")
        return cancelled

    # Agent reassignment after rejection

    def agent_is_free(self, agent: Agent, appointment: Appointment) -> bool:
        if agent.is_on_vacation:
            return False
        for period in agent.unavailable_periods:
            if period.covers(appointment.date, appointment.start_time):
                return False
        return not self.conflicts.has_conflict(
            agent.id, appointment.date, appointment.start_time, appointment.end_time, appointment.id
        )

    def replacement_candidates(self, appointment: Appointment, customer: User) -> List[Agent]:
        excluded = {appointment.agent_id, appointment.previous_agent_id}
        excluded.update(customer.blacklisted_agent_ids)
        return [
            agent for agent in self.store.agents
            if agent.id not in excluded and self.agent_is_free(agent, appointment)
        ]

    def _pick_replacement(self, candidates: List[Agent], on_date: date) -> Agent:
        def load(agent: Agent):
            active = [a for a in self.store.for_agent_on(agent.id, on_date) if a.is_active]
            return (len(active), agent.id)
        return min(candidates, key=load)

    def _move(self, appointment: Appointment, new_agent: Agent):
        release_slot(self.store, appointment)
        self.store.move_to_agent(appointment, new_agent.id)
        book_slot(self.store, appointment)

    def reassign_after_rejection(
        self,
        appointment: Appointment,
        new_agent: Optional[Agent] = None,
    ) -> Optional[Appointment]:
        """Offer a rejected booking to a replacement agent, pending customer approval.

        Returns None, after telling the customer, when no agent is free.
        """
        if appointment.status != S.REJECTED:
            raise InvalidTransitionError("Only rejected appointments can be reassigned")
        prop = self.store.get_property(appointment.property_id)
        if prop.is_closed:
            raise PropertyAlreadySoldError(f"Property {prop.id} is already {prop.status.value}")
        customer = self.store.get_user(appointment.customer_id)

        candidates = self.replacement_candidates(appointment, customer)
        if new_agent is not None:
            if new_agent.id not in {a.id for a in candidates}:
                raise AgentConflictError(f"Agent {new_agent.id} is not free for this viewing")
            chosen = new_agent
        elif candidates:
            chosen = self._pick_replacement(candidates, appointment.date)
        else:
            self.dispatcher.notify(
                customer.id,
                NotificationType.NO_AGENTS_AVAILABLE,
                "No Agents Available",
                f"No other agent is free for your {appointment.date.isoformat()} viewing of {prop.title}.",
                related_id=appointment.id,
            )
            logger.warning(f"No replacement agent for appointment {appointment.id}")
            return None

        rejecting_agent_id = appointment.agent_id
        transition(appointment, S.PENDING_APPROVAL)
        appointment.previous_agent_id = rejecting_agent_id
        appointment.has_viewing_rights = True
        self._move(appointment, chosen)
        self.priority.add(appointment)
        self.priority.recompute(prop.id)

        self.dispatcher.notify(
            customer.id,
            NotificationType.APPROVAL_REQUIRED,
            "New Agent Assigned",
            f"{chosen.name} can take your viewing of {prop.title}. Please approve or choose another agent.",
            related_id=appointment.id,
        )
        self.dispatcher.notify(
            chosen.id,
            NotificationType.AGENT_REASSIGNED,
            "New Booking Assignment",
            f"You have been assigned to a viewing of {prop.title}, pending customer approval.",
            related_id=appointment.id,
        )
        logger.info(f"Appointment {appointment.id} reassigned {rejecting_agent_id} -> {chosen.id}")
        return appointment

    def select_different_agent(self, appointment: Appointment, new_agent: Agent) -> Appointment:
        """Customer picks their own agent after a rejection or instead of the proposed one."""
        if appointment.status not in (S.REJECTED, S.PENDING_APPROVAL):
            raise InvalidTransitionError("A different agent can only be chosen after a rejection")
        prop = self.store.get_property(appointment.property_id)
        if prop.is_closed:
            raise PropertyAlreadySoldError(f"Property {prop.id} is already {prop.status.value}")
        customer = self.store.get_user(appointment.customer_id)
        if new_agent.id in (appointment.agent_id, appointment.previous_agent_id):
            raise AgentConflictError(f"Agent {new_agent.id} already handled this viewing")
        if new_agent.id in customer.blacklisted_agent_ids:
            raise AgentConflictError(f"Agent {new_agent.id} is blacklisted by the customer")
        if not self.agent_is_free(new_agent, appointment):
            raise AgentConflictError(f"Agent {new_agent.id} is not free for this viewing")

        was_active = appointment.is_active
        old_agent_id = appointment.agent_id
        old_key = appointment.slot_key
        transition(appointment, S.PENDING)
        appointment.previous_agent_id = old_agent_id
        appointment.has_viewing_rights = True
        self._move(appointment, new_agent)
        if was_active and prop.is_exclusive:
            self.waitlist.promote_if_vacant(old_key)
        if not was_active:
            self.priority.add(appointment)
        self.priority.recompute(prop.id)

        if was_active:
            self.dispatcher.notify(
                old_agent_id,
                NotificationType.AGENT_CHANGE,
                "Appointment Reassigned",
                "A customer has requested a different agent for their viewing.",
                related_id=appointment.id,
            )
        self.dispatcher.notify(
            new_agent.id,
            NotificationType.BOOKING_NEW,
            "New Booking Assignment",
            f"You have been assigned to a property viewing for {prop.title}.",
            related_id=appointment.id,
        )
        return appointment

    # Ratings

    def rate_agent(
        self,
        appointment: Appointment,
        customer: User,
        rating: int,
        comment: str = "",
    ) -> AgentRating:
        """Record the customer's rating of the agent who ran a finished viewing."""
        if customer.id != appointment.customer_id:
            raise PermissionDeniedError("Only the customer who booked the viewing can rate it")
        if appointment.status not in FINISHED_STATUSES:
            raise InvalidTransitionError(
                f"Only finished viewings can be rated (is '{appointment.status.value}')"
            )
        if appointment.has_rated:
            raise InvalidTransitionError(f"Appointment {appointment.id} was already rated")
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValueError("Rating must be a whole number from 1 to 5")
        agent = self.store.get_agent(appointment.agent_id)

        entry = AgentRating(
            id=str(uuid.uuid4()),
            agent_id=agent.id,
            customer_id=customer.id,
            customer_name=customer.name,
            appointment_id=appointment.id,
            rating=rating,
            comment=comment.strip(),
            created_at=self.clock.now(),
        )
        agent.rating = round((agent.rating * agent.rating_count + rating) / (agent.rating_count + 1), 2)
        agent.rating_count += 1
        agent.latest_ratings.insert(0, entry)
        del agent.latest_ratings[LATEST_RATINGS_KEPT:]
        appointment.has_rated = True
        appointment.rating_id = entry.id

        self.dispatcher.notify(
            agent.id,
            NotificationType.NEW_RATING,
            "New Rating",
            f"{customer.name} rated your viewing {rating}/5.",
            related_id=appointment.id,
        )
        logger.info(f"Agent {agent.id} rated {rating} for appointment {appointment.id}; average {agent.rating}")
        return entry
