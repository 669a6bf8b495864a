"""
Clock abstraction so time-bounded dispatch state can be tested without sleeping.
"""

from datetime import datetime, timedelta

from django.utils import timezone


class SystemClock:
    """Wall clock, timezone-aware (Django's timezone.now)."""

    def now(self) -> datetime:
        return timezone.now()


class FrozenClock:
    """Manually advanced clock for tests and simulations."""

    def __init__(self, start: datetime = None):
        self._now = start or timezone.now()

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> datetime:
        """Move the clock forward, e.g. advance(minutes=5, seconds=1)."""
        self._now = self._now + timedelta(**kwargs)
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value
