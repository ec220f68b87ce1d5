"""Tests for the appointment state machine, sales and reassignment."""

import pytest
from datetime import time

from viewing_engine.core.errors import (
    AgentConflictError,
    InvalidTransitionError,
    PropertyAlreadySoldError,
    SlotUnavailableError,
)
from viewing_engine.scheduling.lifecycle import can_transition, TRANSITIONS
from viewing_engine.storage.models import AppointmentStatus as S, PropertyStatus

from conftest import TODAY, types_for


class TestTransitionTable:
    """Tests for the allowed transitions."""

    @pytest.mark.parametrize("current,target", [
        (S.QUEUED, S.PENDING),
        (S.PENDING, S.ACCEPTED),
        (S.PENDING_APPROVAL, S.ACCEPTED),
        (S.ACCEPTED, S.DONE),
        (S.SCHEDULED, S.SOLD),
        (S.DONE, S.RENTED),
        (S.REJECTED, S.PENDING_APPROVAL),
    ])
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        (S.QUEUED, S.ACCEPTED),
        (S.PENDING, S.DONE),
        (S.DONE, S.CANCELLED),
        (S.REJECTED, S.REJECTED),
        (S.CANCELLED, S.PENDING),
    ])
    def test_refused(self, current, target):
        assert not can_transition(current, target)

    def test_terminal_states(self):
        for status in (S.CANCELLED, S.SOLD, S.RENTED):
            assert TRANSITIONS[status] == frozenset()


class TestAgentResponses:
    """Tests for accept, reject, cancel and done."""

    def test_accept(self, engine, book):
        appointment = book("cust-a")
        engine.accept_appointment(appointment.id)
        assert appointment.status == S.ACCEPTED
        assert "booking_accepted" in types_for(engine, "cust-a")

    def test_accept_terminal_refused(self, engine, book):
        appointment = book("cust-a")
        engine.cancel_appointment(appointment.id)
        with pytest.raises(InvalidTransitionError):
            engine.accept_appointment(appointment.id)
        assert appointment.status == S.CANCELLED

    def test_reject_twice(self, engine, book):
        """The second rejection is refused and emits nothing."""
        appointment = book("cust-a")
        engine.reject_appointment(appointment.id, "Unavailable")
        count = len(engine.notifications_for("cust-a"))

        with pytest.raises(InvalidTransitionError):
            engine.reject_appointment(appointment.id)
        assert len(engine.notifications_for("cust-a")) == count
        assert appointment.rejection_reason == "Unavailable"

    def test_reject_twice_does_not_double_promote(self, engine, book):
        holder = book("cust-a", property_id="prop-x")
        second = book("cust-b", property_id="prop-x")
        third = book("cust-c", property_id="prop-x")

        engine.reject_appointment(holder.id)
        with pytest.raises(InvalidTransitionError):
            engine.reject_appointment(holder.id)

        assert second.status == S.PENDING
        assert third.status == S.QUEUED
        assert third.queue_position == 2

    def test_cancel_frees_slot(self, engine, book):
        appointment = book("cust-a")
        engine.cancel_appointment(appointment.id)
        slot = engine.store.get_agent("agent-1").find_slot(TODAY, time(10, 0))
        assert not slot.is_booked
        assert slot.booking_id is None
        assert "appointment_cancelled" in types_for(engine, "agent-1")

    def test_mark_done_requires_acceptance(self, engine, book):
        appointment = book("cust-a")
        with pytest.raises(InvalidTransitionError):
            engine.mark_done(appointment.id)
        engine.accept_appointment(appointment.id)
        engine.mark_done(appointment.id)
        assert appointment.status == S.DONE

    def test_failed_booking_emits_nothing(self, engine, book):
        book("cust-a")
        before = len(engine.dispatcher.inbox.notifications)
        with pytest.raises(SlotUnavailableError):
            book("cust-b")
        assert len(engine.dispatcher.inbox.notifications) == before
        assert len(engine.store.appointments) == 1


class TestSale:
    """Tests for marking a property sold or rented."""

    @pytest.fixture
    def three_viewings(self, engine, book):
        accepted = book("cust-a")
        engine.accept_appointment(accepted.id)
        return accepted, book("cust-b", agent_id="agent-2"), book("cust-c", agent_id="agent-3")

    def test_sold_cascade(self, engine, three_viewings):
        accepted, second, third = three_viewings
        engine.mark_sold_or_rented("prop-5", "sold", "agent-1", appointment_id=accepted.id, sale_price=345000)

        prop = engine.store.get_property("prop-5")
        assert prop.status == PropertyStatus.SOLD
        assert prop.sold_by_agent_id == "agent-1"
        assert prop.sold_date == TODAY
        assert prop.sale_price == 345000
        assert accepted.status == S.SOLD
        assert second.status == S.CANCELLED
        assert third.status == S.CANCELLED
        assert "property_sold" in types_for(engine, "cust-b")

        agent = engine.store.get_agent("agent-1")
        assert agent.sales_count == 1
        assert agent.sold_properties == ["prop-5"]

    def test_sale_without_appointment_cancels_all(self, engine, three_viewings):
        engine.mark_sold_or_rented("prop-5", PropertyStatus.RENTED, "agent-1")
        assert all(a.status == S.CANCELLED for a in three_viewings)
        assert engine.store.get_property("prop-5").status == PropertyStatus.RENTED

    def test_sale_frees_other_agents(self, engine, three_viewings):
        engine.mark_sold_or_rented("prop-5", "sold", "agent-1", appointment_id=three_viewings[0].id)
        slot = engine.store.get_agent("agent-2").find_slot(TODAY, time(10, 0))
        assert not slot.is_booked

    def test_done_viewings_stay_done(self, engine, book):
        viewed = book("cust-a")
        engine.accept_appointment(viewed.id)
        engine.mark_done(viewed.id)
        buyer = book("cust-b", agent_id="agent-2")
        engine.accept_appointment(buyer.id)

        engine.mark_sold_or_rented("prop-5", "sold", "agent-2", appointment_id=buyer.id)
        assert viewed.status == S.DONE
        assert buyer.status == S.SOLD

    def test_sold_property_refuses_bookings(self, engine, three_viewings, book):
        engine.mark_sold_or_rented("prop-5", "sold", "agent-1", appointment_id=three_viewings[0].id)
        with pytest.raises(PropertyAlreadySoldError):
            book("cust-d", at=time(14, 0))

    def test_accept_on_sold_property(self, engine, three_viewings):
        engine.mark_sold_or_rented("prop-5", "sold", "agent-1", appointment_id=three_viewings[0].id)
        with pytest.raises(PropertyAlreadySoldError):
            engine.accept_appointment(three_viewings[1].id)

    def test_sell_twice(self, engine, three_viewings):
        engine.mark_sold_or_rented("prop-5", "sold", "agent-1", appointment_id=three_viewings[0].id)
        with pytest.raises(PropertyAlreadySoldError):
            engine.mark_sold_or_rented("prop-5", "sold", "agent-1")

    def test_pending_appointment_cannot_be_sold(self, engine, three_viewings):
        """A refused sale changes nothing."""
        with pytest.raises(InvalidTransitionError):
            engine.mark_sold_or_rented("prop-5", "sold", "agent-2", appointment_id=three_viewings[1].id)
        assert engine.store.get_property("prop-5").status == PropertyStatus.PENDING
        assert three_viewings[2].status == S.PENDING

    def test_sold_appointment_keeps_rights(self, engine, three_viewings):
        engine.mark_sold_or_rented("prop-5", "sold", "agent-1", appointment_id=three_viewings[0].id)
        assert three_viewings[0].has_purchase_rights


class TestReassignment:
    """Tests for reassignment after an agent rejects."""

    def test_auto_reassign_least_loaded(self, engine, book):
        book("cust-b", property_id="prop-6", agent_id="agent-2", at=time(14, 0))
        appointment = book("cust-a")
        engine.reject_appointment(appointment.id)

        engine.reassign_after_rejection(appointment.id)

        assert appointment.status == S.PENDING_APPROVAL
        assert appointment.agent_id == "agent-3"
        assert appointment.previous_agent_id == "agent-1"
        assert "approval_required" in types_for(engine, "cust-a")
        assert "agent_reassigned" in types_for(engine, "agent-3")

    def test_ties_broken_by_id(self, engine, book):
        appointment = book("cust-a")
        engine.reject_appointment(appointment.id)
        engine.reassign_after_rejection(appointment.id)
        assert appointment.agent_id == "agent-2"

    def test_blacklisted_and_vacation_skipped(self, engine, book):
        engine.store.get_user("cust-a").blacklisted_agent_ids.append("agent-2")
        appointment = book("cust-a")
        engine.reject_appointment(appointment.id)
        engine.reassign_after_rejection(appointment.id)
        assert appointment.agent_id == "agent-3"

    def test_no_agents_available(self, engine, book):
        engine.toggle_vacation("agent-2")
        book("cust-b", property_id="prop-6", agent_id="agent-3")
        appointment = book("cust-a")
        engine.reject_appointment(appointment.id)

        assert engine.reassign_after_rejection(appointment.id) is None
        assert appointment.status == S.REJECTED
        assert "no_agents_available" in types_for(engine, "cust-a")

    def test_approve_new_agent(self, engine, book):
        appointment = book("cust-a")
        engine.reject_appointment(appointment.id)
        engine.reassign_after_rejection(appointment.id)
        engine.approve_new_agent(appointment.id)

        assert appointment.status == S.ACCEPTED
        slot = engine.store.get_agent("agent-2").find_slot(TODAY, time(10, 0))
        assert slot.booking_id == appointment.id

    def test_rights_restored_on_reassign(self, engine, book):
        appointment = book("cust-a")
        engine.reject_appointment(appointment.id)
        assert not appointment.has_purchase_rights
        engine.reassign_after_rejection(appointment.id)
        assert appointment.has_purchase_rights

    def test_select_different_agent(self, engine, book):
        appointment = book("cust-a")
        engine.reject_appointment(appointment.id)
        engine.select_different_agent(appointment.id, "agent-3")

        assert appointment.status == S.PENDING
        assert appointment.agent_id == "agent-3"
        assert "booking_new" in types_for(engine, "agent-3")

    def test_select_instead_of_proposed(self, engine, book):
        appointment = book("cust-a")
        engine.reject_appointment(appointment.id)
        engine.reassign_after_rejection(appointment.id)
        engine.select_different_agent(appointment.id, "agent-3")

        assert appointment.status == S.PENDING
        assert appointment.previous_agent_id == "agent-2"
        assert not engine.store.get_agent("agent-2").find_slot(TODAY, time(10, 0)).is_booked

    def test_select_busy_agent_refused(self, engine, book):
        book("cust-b", property_id="prop-6", agent_id="agent-3")
        appointment = book("cust-a")
        engine.reject_appointment(appointment.id)
        with pytest.raises(AgentConflictError):
            engine.select_different_agent(appointment.id, "agent-3")
        assert appointment.status == S.REJECTED

    def test_reassign_requires_rejection(self, engine, book):
        appointment = book("cust-a")
        with pytest.raises(InvalidTransitionError):
            engine.reassign_after_rejection(appointment.id)
