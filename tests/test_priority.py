"""Tests for purchase-priority queues."""

import pytest
from datetime import datetime, time

from viewing_engine.core.errors import InvalidTransitionError
from viewing_engine.storage.models import AppointmentStatus, PropertyStatus

from conftest import MONDAY, types_for


def holders(engine, property_id="prop-5"):
    return [a.customer_id for a in engine.get_purchase_priority_queue(property_id) if a.has_purchase_rights]


class TestPurchaseRights:
    """Tests for who holds purchase rights."""

    def test_first_booking_gets_rights(self, engine, book):
        first = book("cust-a")
        assert first.has_purchase_rights
        assert "purchase_rights" in types_for(engine, "cust-a")

    def test_later_booking_is_viewing_only(self, engine, book):
        """B books the same listing with another agent and is told it is viewing only."""
        first = book("cust-a")
        second = book("cust-b", agent_id="agent-2")

        assert first.has_purchase_rights
        assert not second.has_purchase_rights
        assert second.has_viewing_rights
        assert "viewing_only" in types_for(engine, "cust-b")

    def test_cancel_leader_passes_rights(self, engine, book):
        first = book("cust-a")
        second = book("cust-b", agent_id="agent-2")
        engine.cancel_appointment(first.id)

        assert second.has_purchase_rights
        assert not first.has_purchase_rights
        assert "priority_promoted" in types_for(engine, "cust-b")

    def test_reject_leader_passes_rights(self, engine, book):
        first = book("cust-a")
        second = book("cust-b", agent_id="agent-2")
        engine.reject_appointment(first.id)
        assert second.has_purchase_rights

    def test_at_most_one_holder(self, engine, book):
        book("cust-a")
        book("cust-b", agent_id="agent-2")
        third = book("cust-c", agent_id="agent-3")
        book("cust-d", at=time(11, 0))
        assert len(holders(engine)) == 1

        engine.cancel_appointment(engine.get_purchase_priority_queue("prop-5")[0].id)
        assert len(holders(engine)) == 1
        engine.cancel_appointment(third.id)
        assert len(holders(engine)) == 1

    def test_ordering_by_attempt_timestamp(self, engine):
        """An earlier attempt outranks a later one regardless of creation order."""
        late = engine.create_booking(
            "prop-5", "cust-a", "agent-1", MONDAY, time(10, 0),
            attempt_timestamp=datetime(2024, 6, 1, 9, 0, 5),
        )
        early = engine.create_booking(
            "prop-5", "cust-b", "agent-2", MONDAY, time(10, 0),
            attempt_timestamp=datetime(2024, 6, 1, 9, 0, 1),
        )

        assert engine.get_purchase_priority_queue("prop-5") == [early, late]
        assert early.has_purchase_rights and not late.has_purchase_rights

    def test_equal_timestamps_by_insertion(self, engine):
        stamp = datetime(2024, 6, 1, 9, 0, 0)
        first = engine.create_booking("prop-5", "cust-a", "agent-1", MONDAY, time(10, 0), attempt_timestamp=stamp)
        second = engine.create_booking("prop-5", "cust-b", "agent-2", MONDAY, time(10, 0), attempt_timestamp=stamp)
        assert engine.get_purchase_priority_queue("prop-5") == [first, second]

    def test_priority_is_per_property(self, engine, book):
        book("cust-a")
        other = book("cust-b", property_id="prop-6", agent_id="agent-2")
        assert other.has_purchase_rights


class TestPosition:
    """Tests for priority_position."""

    def test_positions(self, engine, book):
        book("cust-a")
        book("cust-b", agent_id="agent-2")
        assert engine.priority_position("prop-5", "cust-a") == 0
        assert engine.priority_position("prop-5", "cust-b") == 1
        assert engine.priority_position("prop-5", "cust-c") == -1

    def test_cancelled_drops_out(self, engine, book):
        first = book("cust-a")
        book("cust-b", agent_id="agent-2")
        engine.cancel_appointment(first.id)
        assert engine.priority_position("prop-5", "cust-a") == -1
        assert engine.priority_position("prop-5", "cust-b") == 0


class TestFirstViewer:
    """The first viewer is recorded once and never reassigned."""

    def test_first_viewer_kept_after_cancel(self, engine, book):
        first = book("cust-a")
        book("cust-b", agent_id="agent-2")
        engine.cancel_appointment(first.id)

        prop = engine.store.get_property("prop-5")
        assert prop.first_viewer_customer_id == "cust-a"
        assert prop.first_viewer_timestamp == first.booking_attempt_timestamp
        assert prop.status == PropertyStatus.PENDING


class TestDecline:
    """Tests for declining purchase rights."""

    def test_decline_passes_rights(self, engine, book):
        first = book("cust-a")
        second = book("cust-b", agent_id="agent-2")
        engine.decline_purchase(first.id)

        assert not first.has_purchase_rights
        assert second.has_purchase_rights
        assert first.has_viewing_rights
        assert engine.priority_position("prop-5", "cust-a") == 0

    def test_decline_twice(self, engine, book):
        first = book("cust-a")
        engine.decline_purchase(first.id)
        with pytest.raises(InvalidTransitionError):
            engine.decline_purchase(first.id)

    def test_everyone_declines(self, engine, book):
        first = book("cust-a")
        engine.decline_purchase(first.id)
        assert holders(engine) == []


class TestWaitlistedRights:
    """Waitlisted customers never hold purchase rights."""

    def test_earlier_attempt_still_queued_without_rights(self, engine, book):
        holder = book("cust-a", property_id="prop-x")
        waiting = engine.create_booking(
            "prop-x", "cust-b", "agent-1", holder.date, holder.start_time,
            attempt_timestamp=datetime(2024, 6, 1, 7, 0, 0),
        )

        assert waiting.status == AppointmentStatus.QUEUED
        assert not waiting.has_purchase_rights
        assert not waiting.has_viewing_rights
        assert holder.has_purchase_rights
        assert holders(engine, "prop-x") == ["cust-a"]

    def test_rights_arrive_with_promotion(self, engine, book):
        holder = book("cust-a", property_id="prop-x")
        waiting = engine.create_booking(
            "prop-x", "cust-b", "agent-1", holder.date, holder.start_time,
            attempt_timestamp=datetime(2024, 6, 1, 7, 0, 0),
        )
        engine.cancel_appointment(holder.id)

        assert waiting.status == AppointmentStatus.PENDING
        assert waiting.has_purchase_rights
        assert "priority_promoted" in types_for(engine, "cust-b")


class TestClosedProperty:
    """Tests for rights once a listing is closed."""

    def test_done_viewing_loses_rights_on_sale(self, engine, book):
        viewed = book("cust-a")
        engine.accept_appointment(viewed.id)
        engine.mark_done(viewed.id)
        assert viewed.has_purchase_rights

        engine.mark_sold_or_rented("prop-5", "sold", "agent-1")

        assert viewed.status == AppointmentStatus.DONE
        assert not viewed.has_purchase_rights
        assert holders(engine) == []

    def test_sold_appointment_leads(self, engine, book):
        viewed = book("cust-a")
        engine.accept_appointment(viewed.id)
        engine.mark_done(viewed.id)
        buyer = book("cust-b", agent_id="agent-2")
        engine.accept_appointment(buyer.id)

        engine.mark_sold_or_rented("prop-5", "sold", "agent-2", appointment_id=buyer.id)
        assert holders(engine) == ["cust-b"]
