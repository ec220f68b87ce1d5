"""Core engine primitives: configuration, time, errors and capabilities."""

from .clock import SystemClock, FixedClock, truncate_to_second
from .config import EngineConfig, ConfigManager
from .errors import (
    ViewingEngineError,
    SlotUnavailableError,
    AgentConflictError,
    InvalidTransitionError,
    PropertyAlreadySoldError,
    NotFoundError,
    PermissionDeniedError,
    MessagingNotAllowedError,
)

__all__ = [
    "SystemClock",
    "FixedClock",
    "truncate_to_second",
    "EngineConfig",
    "ConfigManager",
    "ViewingEngineError",
    "SlotUnavailableError",
    "AgentConflictError",
    "InvalidTransitionError",
    "PropertyAlreadySoldError",
    "NotFoundError",
    "PermissionDeniedError",
    "MessagingNotAllowedError",
]
