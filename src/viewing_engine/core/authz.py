"""Role capabilities checked at the API boundary."""

from enum import Enum
from typing import Dict, FrozenSet, Optional

from .errors import PermissionDeniedError
from ..storage.models import Appointment, User, UserRole


class Capability(Enum):
    """Actions an actor may be allowed to perform."""

    BOOK = "book"
    CANCEL = "cancel"
    RESPOND = "respond"  # accept, reject, mark done, sell
    APPROVE_AGENT = "approve_agent"
    DECLINE_PURCHASE = "decline_purchase"
    OVERRIDE = "override"
    REASSIGN = "reassign"
    VIEW_QUEUES = "view_queues"
    MANAGE_AVAILABILITY = "manage_availability"
    MESSAGE = "message"
    RESOLVE_ALERTS = "resolve_alerts"
    RATE = "rate"


ROLE_CAPABILITIES: Dict[UserRole, FrozenSet[Capability]] = {
    UserRole.CUSTOMER: frozenset({
        Capability.BOOK,
        Capability.CANCEL,
        Capability.APPROVE_AGENT,
        Capability.DECLINE_PURCHASE,
        Capability.MESSAGE,
        Capability.RATE,
    }),
    UserRole.AGENT: frozenset({
        Capability.RESPOND,
        Capability.CANCEL,
        Capability.VIEW_QUEUES,
        Capability.MANAGE_AVAILABILITY,
        Capability.MESSAGE,
    }),
    UserRole.ADMIN: frozenset(Capability) - {Capability.MESSAGE},
}


def has_capability(actor: User, capability: Capability) -> bool:
    return capability in ROLE_CAPABILITIES.get(actor.role, frozenset())


def require(actor: Optional[User], capability: Capability) -> User:
    """Raise PermissionDeniedError unless the actor's role grants the capability."""
    if actor is None:
        raise PermissionDeniedError("Unknown actor")
    if not has_capability(actor, capability):
        raise PermissionDeniedError(
            f"Role '{actor.role.value}' may not perform '{capability.value}'"
        )
    return actor


def require_party(actor: User, appointment: Appointment, capability: Capability) -> User:
    """Require the capability and, for non-admins, that the actor is a party to the appointment."""
    require(actor, capability)
    if actor.role == UserRole.ADMIN:
        return actor
    if actor.role == UserRole.CUSTOMER and appointment.customer_id == actor.id:
        return actor
    if actor.role == UserRole.AGENT and appointment.agent_id == actor.id:
        return actor
    raise PermissionDeniedError("Actor is not a party to this appointment")
