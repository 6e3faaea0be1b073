from datetime import date, datetime
from zoneinfo import ZoneInfo

from ...application.ports.clock import Clock


class SystemClock(Clock):
    """Wall-clock time in the clinic's timezone, as naive datetimes."""

    def __init__(self, timezone: str = "UTC") -> None:
        self._zone = ZoneInfo(timezone)

    def now(self) -> datetime:
        return datetime.now(self._zone).replace(tzinfo=None)

    def today(self) -> date:
        return self.now().date()
