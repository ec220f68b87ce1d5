"""Time sources for the engine."""

from datetime import datetime, date, timedelta
from typing import Optional


def truncate_to_second(value: datetime) -> datetime:
    """Drop sub-second precision from a timestamp."""
    return value.replace(microsecond=0)


class SystemClock:
    """Wall clock, second precision."""

    def now(self) -> datetime:
        return truncate_to_second(datetime.now())

    def today(self) -> date:
        return self.now().date()


class FixedClock:
    """Manually driven clock for tests and simulations."""

    def __init__(self, current: Optional[datetime] = None):
        self.current = truncate_to_second(current or datetime(2024, 6, 1, 8, 0, 0))

    def now(self) -> datetime:
        return self.current

    def today(self) -> date:
        return self.current.date()

    def set(self, current: datetime):
        self.current = truncate_to_second(current)

    def advance(self, seconds: int = 1) -> datetime:
        self.current = self.current + timedelta(seconds=seconds)
        return self.current
