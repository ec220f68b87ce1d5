"""Notification and admin alert module."""

from .dispatcher import (
    NotificationDispatcher,
    Notification,
    NotificationType,
    InMemorySink,
    LoggingSink,
)
from .alerts import AlertManager, AdminAlert, AlertType, AlertStatus, AssignmentOverride

__all__ = [
    'NotificationDispatcher',
    'Notification',
    'NotificationType',
    'InMemorySink',
    'LoggingSink',
    'AlertManager',
    'AdminAlert',
    'AlertType',
    'AlertStatus',
    'AssignmentOverride',
]
