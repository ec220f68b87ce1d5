"""Tests for start-time resolution."""

import pytest
from datetime import date, time, timedelta

from viewing_engine.core.config import EngineConfig
from viewing_engine.core.errors import SlotUnavailableError

from conftest import TODAY, MONDAY, build_engine


def starts_on(starts, on_date):
    return [s.start_time for s in starts if s.date == on_date]


class TestBookingWindow:
    """Tests for the rolling booking window."""

    def test_default_window(self, engine):
        """Past and far-future slots are left out."""
        starts = engine.resolve_available_start_times("agent-1")

        assert [(s.date, s.start_time) for s in starts] == [
            (TODAY, time(10, 0)),
            (TODAY, time(11, 0)),
            (TODAY, time(14, 0)),
            (MONDAY, time(10, 0)),
            (MONDAY, time(11, 0)),
        ]

    @pytest.mark.parametrize("window", [0, 1, 2, 5, 14, 30])
    def test_never_outside_window(self, window):
        """Every returned date lies in [today, today + window]."""
        engine = build_engine(EngineConfig(booking_window_days=window))
        starts = engine.resolve_available_start_times("agent-1")

        for start in starts:
            assert TODAY <= start.date <= TODAY + timedelta(days=window)

    def test_zero_window_is_today_only(self):
        engine = build_engine(EngineConfig(booking_window_days=0))
        starts = engine.resolve_available_start_times("agent-1")
        assert {s.date for s in starts} == {TODAY}

    def test_as_of_moves_window(self, engine):
        """Resolving as of a later date drops earlier slots and reaches further."""
        starts = engine.resolve_available_start_times("agent-1", as_of=date(2024, 6, 10))
        assert [s.date for s in starts] == [date(2024, 6, 20)]

    def test_booking_outside_window_refused(self, engine, book):
        with pytest.raises(SlotUnavailableError):
            book("cust-a", on_date=date(2024, 6, 20))


class TestBlockedTimes:
    """Tests for booked slots, vacation, unavailable periods and buffers."""

    def test_booked_slot_hidden(self, engine, book):
        book("cust-a")
        starts = engine.resolve_available_start_times("agent-1")
        assert time(10, 0) not in starts_on(starts, TODAY)

    def test_vacation_hides_everything(self, engine):
        engine.toggle_vacation("agent-1")
        assert engine.resolve_available_start_times("agent-1") == []

    def test_vacation_refuses_booking(self, engine, book):
        engine.toggle_vacation("agent-1")
        with pytest.raises(SlotUnavailableError):
            book("cust-a")

    def test_unavailable_period(self, engine):
        """A lunch block covering 14:00 removes that slot only."""
        period = engine.add_unavailable_period("agent-1", TODAY, time(13, 30), time(14, 30), "Lunch")
        starts = engine.resolve_available_start_times("agent-1")
        assert starts_on(starts, TODAY) == [time(10, 0), time(11, 0)]

        engine.remove_unavailable_period("agent-1", period.id)
        starts = engine.resolve_available_start_times("agent-1")
        assert time(14, 0) in starts_on(starts, TODAY)

    def test_buffer_after_completed_viewing(self, engine, book):
        """The hour after a done viewing is blocked; later slots stay open."""
        appointment = book("cust-a")
        engine.accept_appointment(appointment.id)
        engine.mark_done(appointment.id)

        starts = engine.resolve_available_start_times("agent-1")
        assert starts_on(starts, TODAY) == [time(14, 0)]

    def test_no_buffer_for_pending_viewing(self, engine, book):
        book("cust-a")
        starts = engine.resolve_available_start_times("agent-1")
        assert time(11, 0) in starts_on(starts, TODAY)

    def test_buffer_capped_at_last_working_hour(self):
        """A two hour buffer cannot run past the agent's last slot of the day."""
        engine = build_engine(EngineConfig(buffer_hours=2))
        engine.clock.advance(1)
        appointment = engine.create_booking("prop-5", "cust-a", "agent-1", MONDAY, time(10, 0))
        engine.accept_appointment(appointment.id)
        engine.mark_done(appointment.id)

        agent = engine.store.get_agent("agent-1")
        assert engine.resolver.buffer_windows(agent, MONDAY) == [(time(11, 0), time(12, 0))]

    def test_zero_buffer(self):
        engine = build_engine(EngineConfig(buffer_hours=0))
        appointment = engine.create_booking("prop-5", "cust-a", "agent-1", TODAY, time(10, 0))
        engine.accept_appointment(appointment.id)
        engine.mark_done(appointment.id)

        starts = engine.resolve_available_start_times("agent-1")
        assert time(11, 0) in starts_on(starts, TODAY)

    def test_unknown_slot_refused(self, engine, book):
        with pytest.raises(SlotUnavailableError):
            book("cust-a", at=time(9, 0))


class TestExclusiveSlots:
    """Tests for exclusive-property slots that are taken."""

    def test_taken_exclusive_slot_offered_as_waitlist(self, engine, book):
        book("cust-a", property_id="prop-x")

        starts = engine.resolve_available_start_times("agent-1", property_id="prop-x")
        ten = [s for s in starts if s.date == TODAY and s.start_time == time(10, 0)]
        assert len(ten) == 1
        assert ten[0].waitlist is True
        assert ten[0].to_dict()["start_time"] == "10:00"

    def test_taken_exclusive_slot_hidden_for_other_listings(self, engine, book):
        book("cust-a", property_id="prop-x")

        starts = engine.resolve_available_start_times("agent-1", property_id="prop-5")
        assert time(10, 0) not in starts_on(starts, TODAY)
        starts = engine.resolve_available_start_times("agent-1")
        assert time(10, 0) not in starts_on(starts, TODAY)
