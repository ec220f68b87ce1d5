"""Admin alerts and the agent override audit trail."""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, List

from ..core.errors import NotFoundError, InvalidTransitionError

logger = logging.getLogger(__name__)


class AlertType(Enum):
    """Kinds of admin intervention."""
    COMPLAINT = "complaint"
    TIMEOUT = "timeout"
    MANUAL_OVERRIDE = "manual_override"


class AlertStatus(Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


@dataclass
class AdminAlert:
    """An item on the admin dashboard."""
    id: str
    alert_type: AlertType
    description: str
    status: AlertStatus = AlertStatus.PENDING
    appointment_id: Optional[str] = None
    customer_id: Optional[str] = None
    agent_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolution: Optional[str] = None


@dataclass
class AssignmentOverride:
    """Audit record of an agent reassignment."""
    id: str
    appointment_id: str
    previous_agent_id: str
    new_agent_id: str
    reason: str
    created_by: str
    created_at: datetime = field(default_factory=datetime.now)


class AlertManager:
    """Stores admin alerts and override audit entries."""

    def __init__(self, clock=None):
        self.clock = clock
        self.alerts: Dict[str, AdminAlert] = {}
        self.overrides: List[AssignmentOverride] = []
        self._lock = threading.Lock()

    def _now(self) -> datetime:
        return self.clock.now() if self.clock else datetime.now()

    def raise_alert(
        self,
        alert_type: AlertType,
        description: str,
        appointment_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        agent_id: Optional[str] = None,
    ) -> AdminAlert:
        """Open a pending alert, e.g. a complaint or an unconfirmed booking timeout."""
        alert = AdminAlert(
            id=str(uuid.uuid4()),
            alert_type=alert_type,
            description=description,
            appointment_id=appointment_id,
            customer_id=customer_id,
            agent_id=agent_id,
            created_at=self._now(),
        )
        with self._lock:
            self.alerts[alert.id] = alert
        logger.info(f"Admin alert opened: {alert_type.value} ({alert.id})")
        return alert

    def resolve_alert(self, alert_id: str, resolution: str, resolved_by: str) -> AdminAlert:
        with self._lock:
            alert = self.alerts.get(alert_id)
            if not alert:
                raise NotFoundError(f"Alert {alert_id} not found")
            if alert.status == AlertStatus.RESOLVED:
                raise InvalidTransitionError(f"Alert {alert_id} is already resolved")
            alert.status = AlertStatus.RESOLVED
            alert.resolution = resolution
            alert.resolved_by = resolved_by
            alert.resolved_at = self._now()
        return alert

    def record_override(
        self,
        appointment_id: str,
        previous_agent_id: str,
        new_agent_id: str,
        reason: str,
        created_by: str,
        resolution: str,
    ) -> AssignmentOverride:
        """Write the audit entry and a resolved manual-override alert."""
        now = self._now()
        entry = AssignmentOverride(
            id=str(uuid.uuid4()),
            appointment_id=appointment_id,
            previous_agent_id=previous_agent_id,
            new_agent_id=new_agent_id,
            reason=reason,
            created_by=created_by,
            created_at=now,
        )
        alert = AdminAlert(
            id=str(uuid.uuid4()),
            alert_type=AlertType.MANUAL_OVERRIDE,
            description=reason,
            status=AlertStatus.RESOLVED,
            appointment_id=appointment_id,
            agent_id=new_agent_id,
            created_at=now,
            resolved_at=now,
            resolved_by=created_by,
            resolution=resolution,
        )
        with self._lock:
            self.overrides.append(entry)
            self.alerts[alert.id] = alert
        return entry

    def pending(self) -> List[AdminAlert]:
        with self._lock:
            return [a for a in self.alerts.values() if a.status == AlertStatus.PENDING]

    def resolved(self) -> List[AdminAlert]:
        with self._lock:
            return [a for a in self.alerts.values() if a.status == AlertStatus.RESOLVED]

    def overrides_for(self, appointment_id: str) -> List[AssignmentOverride]:
        with self._lock:
            return [o for o in self.overrides if o.appointment_id == appointment_id]
