"""Concurrent booking through threads."""

import threading
from datetime import time

from viewing_engine.core.errors import SlotUnavailableError
from viewing_engine.storage.models import AppointmentStatus, User, UserRole

from conftest import TODAY


def race(engine, property_id, customers, agent_id="agent-1", at=time(10, 0)):
    """Release every customer at once; return (appointments, refusals)."""
    barrier = threading.Barrier(len(customers))
    results, refusals = [], []
    guard = threading.Lock()

    def attempt(customer_id):
        barrier.wait()
        try:
            appointment = engine.create_booking(property_id, customer_id, agent_id, TODAY, at)
            with guard:
                results.append(appointment)
        except SlotUnavailableError:
            with guard:
                refusals.append(customer_id)

    threads = [threading.Thread(target=attempt, args=(c,)) for c in customers]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results, refusals


def add_customers(engine, count):
    ids = [f"racer-{i}" for i in range(count)]
    for customer_id in ids:
        engine.add_user(User(id=customer_id, name=customer_id, role=UserRole.CUSTOMER))
    return ids


class TestConcurrentBooking:
    """The critical section decides the winner."""

    def test_one_winner_for_shared_slot(self, engine):
        customers = add_customers(engine, 12)
        results, refusals = race(engine, "prop-5", customers)

        assert len(results) == 1
        assert len(refusals) == 11
        slot = engine.store.get_agent("agent-1").find_slot(TODAY, time(10, 0))
        assert slot.booking_id == results[0].id

    def test_one_winner_across_listings(self, engine):
        """Different listings still compete for the same agent."""
        customers = add_customers(engine, 2)
        barrier = threading.Barrier(2)
        outcomes = []

        def attempt(property_id, customer_id):
            barrier.wait()
            try:
                engine.create_booking(property_id, customer_id, "agent-1", TODAY, time(10, 0))
                outcomes.append(property_id)
            except SlotUnavailableError:
                pass

        threads = [
            threading.Thread(target=attempt, args=("prop-5", customers[0])),
            threading.Thread(target=attempt, args=("prop-6", customers[1])),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(outcomes) == 1

    def test_exclusive_queue_positions_unique(self, engine):
        customers = add_customers(engine, 8)
        results, refusals = race(engine, "prop-x", customers)

        assert refusals == []
        pending = [a for a in results if a.status == AppointmentStatus.PENDING]
        queued = [a for a in results if a.status == AppointmentStatus.QUEUED]
        assert len(pending) == 1
        assert sorted(a.queue_position for a in queued) == list(range(2, 9))

    def test_single_purchase_rights_holder(self, engine):
        customers = add_customers(engine, 8)
        results, _ = race(engine, "prop-x", customers)
        holders = [a for a in results if a.has_purchase_rights]
        assert len(holders) == 1
        assert holders[0].status == AppointmentStatus.PENDING

    def test_cancel_and_book_race(self, engine, book):
        """A cancellation racing new bookings never leaves two holders."""
        holder = book("cust-a", property_id="prop-x")
        customers = add_customers(engine, 5)
        barrier = threading.Barrier(len(customers) + 1)

        def cancel():
            barrier.wait()
            engine.cancel_appointment(holder.id)

        def join(customer_id):
            barrier.wait()
            engine.create_booking("prop-x", customer_id, "agent-1", TODAY, time(10, 0))

        threads = [threading.Thread(target=cancel)]
        threads += [threading.Thread(target=join, args=(c,)) for c in customers]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        active = [
            a for a in engine.store.for_property("prop-x")
            if a.status == AppointmentStatus.PENDING
        ]
        assert len(active) == 1
        queued = engine.get_waitlist("prop-x", "agent-1", TODAY, time(10, 0))
        assert [a.queue_position for a in queued] == list(range(2, len(queued) + 2))
