"""Tests for the messaging gate."""

import pytest
from datetime import date, time

from viewing_engine.core.errors import MessagingNotAllowedError, PermissionDeniedError
from viewing_engine.messaging.gate import can_message
from viewing_engine.storage.models import Appointment, AppointmentStatus, User


@pytest.fixture
def accepted(engine, book):
    appointment = book("cust-a")
    engine.accept_appointment(appointment.id)
    return appointment


class TestCanMessage:
    """Tests for the pure gate function."""

    @pytest.mark.parametrize("status", list(AppointmentStatus))
    def test_unverified_never_allowed(self, status):
        appointment = Appointment(
            id="a1", property_id="p", customer_id="c", agent_id="g",
            date=date(2024, 6, 1), start_time=time(10, 0), status=status,
        )
        verified = User(id="g", name="G", sms_verified=True)
        unverified = User(id="c", name="C", sms_verified=False)
        assert not can_message(appointment, unverified, verified)
        assert not can_message(appointment, verified, unverified)

    @pytest.mark.parametrize("status,allowed", [
        (AppointmentStatus.ACCEPTED, True),
        (AppointmentStatus.SCHEDULED, True),
        (AppointmentStatus.PENDING, False),
        (AppointmentStatus.DONE, False),
        (AppointmentStatus.CANCELLED, False),
    ])
    def test_status_gate(self, status, allowed):
        appointment = Appointment(
            id="a1", property_id="p", customer_id="c", agent_id="g",
            date=date(2024, 6, 1), start_time=time(10, 0), status=status,
        )
        customer = User(id="c", name="C", sms_verified=True)
        agent = User(id="g", name="G", sms_verified=True)
        assert can_message(appointment, customer, agent) is allowed


class TestMessageService:
    """Tests for sending through the engine."""

    def test_flips_when_both_verify(self, engine, accepted):
        """No re-creation needed: the gate opens the moment both sides verify."""
        assert not engine.can_message(accepted.id)
        engine.verify_sms("cust-a")
        assert not engine.can_message(accepted.id)
        engine.verify_sms("agent-1")
        assert engine.can_message(accepted.id)

    def test_send_refused_until_open(self, engine, accepted):
        with pytest.raises(MessagingNotAllowedError):
            engine.send_message(accepted.id, "cust-a", "Is parking available?")

        engine.verify_sms("cust-a")
        engine.verify_sms("agent-1")
        message = engine.send_message(accepted.id, "cust-a", "Is parking available?")

        assert message.content == "Is parking available?"
        assert engine.get_messages(accepted.id) == [message]

    def test_gate_rechecked_on_every_send(self, engine, accepted):
        engine.verify_sms("cust-a")
        engine.verify_sms("agent-1")
        engine.send_message(accepted.id, "agent-1", "See you at ten")

        engine.store.get_user("cust-a").sms_verified = False
        with pytest.raises(MessagingNotAllowedError):
            engine.send_message(accepted.id, "agent-1", "Running late")

    def test_outsider_cannot_send(self, engine, accepted):
        engine.verify_sms("cust-a")
        engine.verify_sms("agent-1")
        with pytest.raises(PermissionDeniedError):
            engine.send_message(accepted.id, "cust-b", "Hello")

    def test_closed_after_done(self, engine, accepted):
        engine.verify_sms("cust-a")
        engine.verify_sms("agent-1")
        engine.mark_done(accepted.id)
        assert not engine.can_message(accepted.id)
