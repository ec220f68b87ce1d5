"""Notification dispatch for booking events.

The engine never delivers notifications itself. It builds write-once
``Notification`` records and hands them to sinks supplied by the host
application. Delivery is deferred until an engine operation commits, so a
failed operation emits nothing.
"""

import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, List, Any, Iterator

logger = logging.getLogger(__name__)


class NotificationType(Enum):
    """Types of notifications."""
    # Booking
    BOOKING_NEW = "booking_new"
    BOOKING_PENDING = "booking_pending"
    BOOKING_ACCEPTED = "booking_accepted"
    BOOKING_REJECTED = "booking_rejected"
    APPOINTMENT_CANCELLED = "appointment_cancelled"
    VIEWING_DONE = "viewing_done"

    # Agent assignment
    AGENT_CHANGE = "agent_change"
    AGENT_REASSIGNED = "agent_reassigned"
    APPROVAL_REQUIRED = "approval_required"
    NO_AGENTS_AVAILABLE = "no_agents_available"
    OVERRIDE = "override"

    # Purchase priority
    VIEWING_ONLY = "viewing_only"
    PURCHASE_RIGHTS = "purchase_rights"
    PRIORITY_PROMOTED = "priority_promoted"

    # Waitlist
    VIEWING_QUEUED = "viewing_queued"
    SLOT_WAITLISTED = "slot_waitlisted"
    HIGH_DEMAND_WARNING = "high_demand_warning"
    QUEUE_PROMOTED = "queue_promoted"

    # Property
    PROPERTY_SOLD = "property_sold"

    # Ratings
    NEW_RATING = "new_rating"


@dataclass
class Notification:
    """A notification addressed to one user."""
    id: str
    user_id: str
    notification_type: NotificationType
    title: str
    message: str
    related_id: Optional[str] = None
    read: bool = False
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.notification_type.value,
            "title": self.title,
            "message": self.message,
            "related_id": self.related_id,
            "read": self.read,
            "created_at": self.created_at.isoformat(),
        }


class InMemorySink:
    """Keeps emitted notifications for later lookup."""

    def __init__(self):
        self.notifications: List[Notification] = []
        self._lock = threading.Lock()

    def emit(self, notification: Notification):
        with self._lock:
            self.notifications.append(notification)

    def for_user(self, user_id: str, unread_only: bool = False) -> List[Notification]:
        with self._lock:
            return [
                n for n in self.notifications
                if n.user_id == user_id and (not unread_only or not n.read)
            ]

    def mark_read(self, notification_id: str, user_id: Optional[str] = None) -> Optional[Notification]:
        """Flag a notification as read; None when unknown or addressed to someone else."""
        with self._lock:
            for n in self.notifications:
                if n.id == notification_id and (user_id is None or n.user_id == user_id):
                    n.read = True
                    return n
        return None


class LoggingSink:
    """Writes every notification to the log."""

    def emit(self, notification: Notification):
        logger.info(
            f"[{notification.notification_type.value}] -> {notification.user_id}: {notification.title}"
        )


class NotificationDispatcher:
    """Builds notifications and fans them out to sinks."""

    def __init__(self, sinks: Optional[List[Any]] = None, clock=None):
        self.sinks = list(sinks) if sinks is not None else [InMemorySink()]
        self.clock = clock
        self._local = threading.local()

    @property
    def inbox(self) -> Optional[InMemorySink]:
        """The first in-memory sink, if any."""
        for sink in self.sinks:
            if isinstance(sink, InMemorySink):
                return sink
        return None

    def _buffers(self) -> List[List[Notification]]:
        if not hasattr(self._local, "buffers"):
            self._local.buffers = []
        return self._local.buffers

    @contextmanager
    def deferred(self) -> Iterator[None]:
        """Hold notifications until the block exits cleanly.

        Nested blocks join the outermost one; an exception anywhere drops
        everything buffered since the outermost block began.
        """
        buffers = self._buffers()
        outermost = not buffers
        if outermost:
            buffers.append([])
        try:
            yield
        except BaseException:
            if outermost:
                buffers.pop()
            raise
        if outermost:
            pending = buffers.pop()
            for notification in pending:
                self.emit(notification)

    def emit(self, notification: Notification):
        buffers = self._buffers()
        if buffers:
            buffers[-1].append(notification)
            return
        for sink in self.sinks:
            sink.emit(notification)

    def notify(
        self,
        user_id: str,
        notification_type: NotificationType,
        title: str,
        message: str,
        related_id: Optional[str] = None,
    ) -> Notification:
        """Create and emit a notification."""
        notification = Notification(
            id=str(uuid.uuid4()),
            user_id=user_id,
            notification_type=notification_type,
            title=title,
            message=message,
            related_id=related_id,
            created_at=self.clock.now() if self.clock else datetime.now(),
        )
        self.emit(notification)
        return notification
