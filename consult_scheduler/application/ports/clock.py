from typing import Protocol
from datetime import date, datetime


class Clock(Protocol):
    """Source of "now" for every time-based guard. Returns clinic-local naive datetimes."""

    def now(self) -> datetime:
        ...

    def today(self) -> date:
        ...
