"""
Time provider with dependency injection for testability
"""

from typing import Protocol, Optional
from datetime import date, datetime


class Clock(Protocol):
    """Protocol for anything that can tell the current date and time"""

    def now(self) -> datetime:
        """Current UTC timestamp"""
        ...

    def today(self) -> date:
        """Current calendar date"""
        ...


class SystemClock:
    """Wall-clock time in UTC"""

    def now(self) -> datetime:
        return datetime.utcnow()

    def today(self) -> date:
        return self.now().date()


class FixedClock:
    """Clock frozen at a given moment, movable by hand (tests, CLI replays)"""

    def __init__(self, moment: datetime):
        self.moment = moment

    @classmethod
    def on(cls, day: date, hour: int = 12) -> "FixedClock":
        return cls(datetime(day.year, day.month, day.day, hour))

    def now(self) -> datetime:
        return self.moment

    def today(self) -> date:
        return self.moment.date()

    def set(self, moment: datetime):
        self.moment = moment


_clock: Optional[Clock] = None


def get_clock() -> Clock:
    """Get global clock instance"""
    global _clock
    if _clock is None:
        _clock = SystemClock()
    return _clock


def set_clock(clock: Optional[Clock]):
    """Replace the global clock (None restores the system clock)"""
    global _clock
    _clock = clock
