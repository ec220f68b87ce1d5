"""Load agents, customers and listings from a JSON seed file."""

import json
import logging
import uuid
from datetime import date, datetime, time
from pathlib import Path
from typing import Optional, Dict, Any, List, Union

from ..core.clock import FixedClock
from .models import (
    Agent,
    AvailabilitySlot,
    ListingType,
    Property,
    UnavailablePeriod,
    User,
    UserRole,
)

logger = logging.getLogger(__name__)


def _time(value: Optional[str]) -> Optional[time]:
    return time.fromisoformat(value) if value else None


def _slot(data: Dict[str, Any]) -> AvailabilitySlot:
    return AvailabilitySlot(
        id=data.get("id") or str(uuid.uuid4()),
        date=date.fromisoformat(data["date"]),
        start_time=time.fromisoformat(data["start_time"]),
        end_time=_time(data.get("end_time")),
    )


def _period(data: Dict[str, Any]) -> UnavailablePeriod:
    return UnavailablePeriod(
        id=data.get("id") or str(uuid.uuid4()),
        date=date.fromisoformat(data["date"]),
        start_time=time.fromisoformat(data["start_time"]),
        end_time=time.fromisoformat(data["end_time"]),
        reason=data.get("reason", ""),
    )


def agent_from_dict(data: Dict[str, Any]) -> Agent:
    return Agent(
        id=data["id"],
        name=data.get("name", data["id"]),
        email=data.get("email", ""),
        phone=data.get("phone", ""),
        sms_verified=bool(data.get("sms_verified", False)),
        is_on_vacation=bool(data.get("is_on_vacation", False)),
        rating=float(data.get("rating", 0.0)),
        rating_count=int(data.get("rating_count", 0)),
        availability=[_slot(s) for s in data.get("availability", [])],
        unavailable_periods=[_period(p) for p in data.get("unavailable_periods", [])],
    )


def user_from_dict(data: Dict[str, Any], role: UserRole) -> User:
    return User(
        id=data["id"],
        name=data.get("name", data["id"]),
        email=data.get("email", ""),
        role=role,
        phone=data.get("phone", ""),
        sms_verified=bool(data.get("sms_verified", False)),
        blacklisted_agent_ids=list(data.get("blacklisted_agent_ids", [])),
    )


def property_from_dict(data: Dict[str, Any]) -> Property:
    return Property(
        id=data["id"],
        title=data.get("title", data["id"]),
        address=data.get("address", ""),
        price=data.get("price", 0),
        listing_type=ListingType(data.get("listing_type", "sale")),
        is_exclusive=bool(data.get("is_exclusive", False)),
        assigned_agent_id=data.get("assigned_agent_id"),
    )


def load_seed(path: Union[str, Path]) -> Dict[str, Any]:
    with open(path, 'r') as f:
        return json.load(f)


def populate(engine, data: Dict[str, Any]):
    """Add every agent, customer, admin and property in ``data`` to the engine."""
    for item in data.get("agents", []):
        engine.add_agent(agent_from_dict(item))
    for item in data.get("customers", []):
        engine.add_user(user_from_dict(item, UserRole.CUSTOMER))
    for item in data.get("admins", []):
        engine.add_user(user_from_dict(item, UserRole.ADMIN))
    for item in data.get("properties", []):
        engine.add_property(property_from_dict(item))

    logger.info(
        f"Seeded {len(data.get('agents', []))} agents, {len(data.get('customers', []))} customers, "
        f"{len(data.get('properties', []))} properties"
    )
    return engine


def clock_for(data: Dict[str, Any]):
    """A FixedClock pinned to the seed's ``now`` timestamp, or None for wall time."""
    now = data.get("now")
    return FixedClock(datetime.fromisoformat(now)) if now else None


def replay_bookings(engine, data: Dict[str, Any]) -> List[Any]:
    """Create the seed's ``bookings`` in order through the engine."""
    created = []
    for item in data.get("bookings", []):
        attempt = item.get("attempt_timestamp")
        created.append(engine.create_booking(
            item["property_id"],
            item["customer_id"],
            item["agent_id"],
            date.fromisoformat(item["date"]),
            time.fromisoformat(item["start_time"]),
            attempt_timestamp=datetime.fromisoformat(attempt) if attempt else None,
        ))
    return created
