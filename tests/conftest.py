"""Shared fixtures: a small engine on a fixed clock."""

import pytest
from datetime import datetime, date, time

from viewing_engine.core.clock import FixedClock
from viewing_engine.core.config import EngineConfig
from viewing_engine.scheduling.engine import BookingEngine
from viewing_engine.storage.models import (
    Agent,
    AvailabilitySlot,
    Property,
    User,
    UserRole,
)

TODAY = date(2024, 6, 1)
MONDAY = date(2024, 6, 3)


def make_slots(agent_id: str):
    """10:00, 11:00 and 14:00 today, two slots on Monday, one out of the window and one in the past."""
    specs = [
        (TODAY, time(10, 0), time(11, 0)),
        (TODAY, time(11, 0), time(12, 0)),
        (TODAY, time(14, 0), time(15, 0)),
        (MONDAY, time(10, 0), time(11, 0)),
        (MONDAY, time(11, 0), time(12, 0)),
        (date(2024, 6, 20), time(10, 0), time(11, 0)),
        (date(2024, 5, 31), time(10, 0), time(11, 0)),
    ]
    return [
        AvailabilitySlot(id=f"{agent_id}-{d.isoformat()}-{s.strftime('%H%M')}", date=d, start_time=s, end_time=e)
        for d, s, e in specs
    ]


def build_engine(config: EngineConfig = None) -> BookingEngine:
    clock = FixedClock(datetime(2024, 6, 1, 8, 0, 0))
    engine = BookingEngine(config=config or EngineConfig(), clock=clock)

    for agent_id, name in [("agent-1", "Alice Agent"), ("agent-2", "Bob Agent"), ("agent-3", "Cara Agent")]:
        engine.add_agent(Agent(id=agent_id, name=name, availability=make_slots(agent_id)))

    for customer_id in ["cust-a", "cust-b", "cust-c", "cust-d"]:
        engine.add_user(User(id=customer_id, name=customer_id.title(), role=UserRole.CUSTOMER))
    engine.add_user(User(id="admin-1", name="Admin", role=UserRole.ADMIN))

    engine.add_property(Property(id="prop-5", title="5 Elm Street", price=350000, assigned_agent_id="agent-1"))
    engine.add_property(Property(id="prop-6", title="6 Oak Avenue", price=420000))
    engine.add_property(Property(id="prop-x", title="Exclusive Loft", price=900000, is_exclusive=True))
    return engine


@pytest.fixture
def engine():
    """Engine with three agents, four customers, one admin and three listings."""
    return build_engine()


@pytest.fixture
def book(engine):
    """Book a viewing, one second after the previous attempt."""

    def _book(customer_id, property_id="prop-5", agent_id="agent-1", on_date=TODAY, at=time(10, 0), **kwargs):
        engine.clock.advance(1)
        return engine.create_booking(property_id, customer_id, agent_id, on_date, at, **kwargs)

    return _book


def types_for(engine, user_id):
    """Notification type values a user has received, oldest first."""
    return [n.notification_type.value for n in engine.notifications_for(user_id)]
