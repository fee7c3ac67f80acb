"""
Injectable clock for leave timestamps.

Services receive a Clock at construction instead of calling ``datetime.now()``
so that day boundaries are computed in one named civil zone regardless of the
host's timezone, and so tests can pin time.

Timestamps handed out are naive wall-clock values in the clock's zone; that is
how ``lastUpdated``, ``dateCreated`` and ``dateApproved`` are stored.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from hr_leave.core.config import settings


class Clock(ABC):
    """Source of the current civil date and time."""

    @abstractmethod
    def now(self) -> datetime:
        """Current wall-clock time in the clock's zone (naive)."""
        ...

    def today(self) -> date:
        return self.now().date()

    def current_year(self) -> int:
        return self.now().year


class ZonedClock(Clock):
    """Production clock reading system time and converting it to a fixed zone."""

    def __init__(self, tz_name: Optional[str] = None):
        self.tz_name = tz_name or settings.timezone
        self._zone = ZoneInfo(self.tz_name)

    def now(self) -> datetime:
        return datetime.now(self._zone).replace(tzinfo=None)

    def __repr__(self) -> str:
        return f"ZonedClock({self.tz_name!r})"


class FixedClock(Clock):
    """
    Test clock frozen at a given instant.

    ``advance()`` moves it forward so ordering of timestamps can be asserted.
    """

    def __init__(self, fixed: datetime):
        self._now = fixed.replace(tzinfo=None)

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> datetime:
        self._now = self._now + timedelta(**kwargs)
        return self._now


def default_clock() -> Clock:
    return ZonedClock(settings.timezone)
