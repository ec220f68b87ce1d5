"""Engine configuration: booking window, buffers and working hours."""

import json
import logging
import os
from dataclasses import dataclass
from datetime import time
from pathlib import Path
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


@dataclass
class EngineConfig:
    """Tunable constants for slot resolution and booking."""

    # Rolling window customers may book into, inclusive of today
    booking_window_days: int = 14

    # Rest period after a completed viewing
    buffer_hours: int = 1

    # Assumed viewing length when an appointment has no end time
    default_viewing_minutes: int = 60

    # Fallback end of the working day when an agent has no slots that date
    last_working_hour: time = time(17, 0)

    # Let several customers join the same agent/slot for one non-exclusive property
    allow_group_viewings: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "booking_window_days": self.booking_window_days,
            "buffer_hours": self.buffer_hours,
            "default_viewing_minutes": self.default_viewing_minutes,
            "last_working_hour": self.last_working_hour.strftime("%H:%M"),
            "allow_group_viewings": self.allow_group_viewings,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        defaults = cls()
        last_hour = data.get("last_working_hour")
        return cls(
            booking_window_days=int(data.get("booking_window_days", defaults.booking_window_days)),
            buffer_hours=int(data.get("buffer_hours", defaults.buffer_hours)),
            default_viewing_minutes=int(
                data.get("default_viewing_minutes", defaults.default_viewing_minutes)
            ),
            last_working_hour=time.fromisoformat(last_hour) if last_hour else defaults.last_working_hour,
            allow_group_viewings=bool(data.get("allow_group_viewings", defaults.allow_group_viewings)),
        )


_ENV_OVERRIDES = {
    "VIEWINGS_BOOKING_WINDOW_DAYS": "booking_window_days",
    "VIEWINGS_BUFFER_HOURS": "buffer_hours",
    "VIEWINGS_DEFAULT_VIEWING_MINUTES": "default_viewing_minutes",
    "VIEWINGS_LAST_WORKING_HOUR": "last_working_hour",
    "VIEWINGS_ALLOW_GROUP_VIEWINGS": "allow_group_viewings",
}


class ConfigManager:
    """Load and persist engine configuration.

    Values come from the JSON file first, then from ``VIEWINGS_*``
    environment variables.
    """

    def __init__(self, config_path: Optional[Path] = None, environ: Optional[Dict[str, str]] = None):
        self.config_path = config_path or Path.home() / ".viewing-engine" / "config.json"
        self.environ = os.environ if environ is None else environ
        self.config = self._load_config()

    def _load_config(self) -> EngineConfig:
        data: Dict[str, Any] = {}
        if self.config_path.exists():
            try:
                with open(self.config_path, 'r') as f:
                    data = json.load(f)
            except Exception as e:
                logger.error(f"Error loading engine config: {e}")
                data = {}

        for env_name, key in _ENV_OVERRIDES.items():
            raw = self.environ.get(env_name)
            if raw is None or raw == "":
                continue
            if key == "allow_group_viewings":
                data[key] = raw.lower() in ("1", "true", "yes")
            else:
                data[key] = raw

        return EngineConfig.from_dict(data)

    def save_config(self):
        """Save configuration to file."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, 'w') as f:
            json.dump(self.config.to_dict(), f, indent=2)

    def update_window(self, booking_window_days: int, buffer_hours: Optional[int] = None):
        """Change the booking window and optionally the buffer."""
        self.config.booking_window_days = booking_window_days
        if buffer_hours is not None:
            self.config.buffer_hours = buffer_hours
        self.save_config()
