"""Time sources for the floor engine."""

from datetime import datetime, timedelta


class Clock:
    """Wall clock. All engine timestamps are naive UTC."""

    def now(self) -> datetime:
        return datetime.utcnow()


class FrozenClock(Clock):
    """Clock pinned to a fixed instant, moved forward by hand."""

    def __init__(self, start: datetime):
        self._now = start

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> datetime:
        """Move the clock forward by a ``timedelta(**kwargs)``."""
        self._now = self._now + timedelta(**kwargs)
        return self._now

    def set(self, moment: datetime):
        self._now = moment
