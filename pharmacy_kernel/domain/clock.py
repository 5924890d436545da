"""
Clock -- injectable time source with a business timezone.

Responsibility:
    Domain, engine and service code never call ``datetime.now()`` or
    ``date.today()``; they receive a ``Clock``.  Calendar questions (which
    day an issue belongs to, how many days a lot has left) are answered in
    the pharmacy's local timezone, not in UTC.

Architecture position:
    Kernel > Domain -- pure functional core.  ``SystemClock`` is the one
    sanctioned I/O boundary for time.

Invariants enforced:
    - ``now()`` is what gets stored (receipt and issue timestamps, lot
      ``created_at`` used as the FEFO tie-break, alert stamps).
    - ``local()`` / ``today()`` are what get compared against calendar
      dates: document-code dates, auto lot numbers, days until expiry.
    - A naive datetime is taken to be local already and is never shifted.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo


def _as_tz(tz: str | tzinfo) -> tzinfo:
    return ZoneInfo(tz) if isinstance(tz, str) else tz


class Clock(ABC):
    """Time source injected into every service that stamps or compares time."""

    business_tz: tzinfo = timezone.utc

    @abstractmethod
    def now(self) -> datetime:
        ...

    def local(self, moment: datetime, tz: str | tzinfo | None = None) -> datetime:
        """``moment`` in ``tz`` (default: the business timezone)."""
        if moment.tzinfo is None:
            return moment
        return moment.astimezone(_as_tz(tz) if tz is not None else self.business_tz)

    def local_now(self, tz: str | tzinfo | None = None) -> datetime:
        return self.local(self.now(), tz)

    def today(self) -> date:
        """The business-local calendar date."""
        return self.local_now().date()


class SystemClock(Clock):
    """Wall-clock time, timezone-aware UTC."""

    def __init__(self, business_tz: str | tzinfo = "UTC"):
        self.business_tz = _as_tz(business_tz)

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    ``now()`` returns the same value until ``advance()``, ``set_time()`` or
    ``tick()`` moves it.
    """

    def __init__(
        self,
        fixed_time: datetime | None = None,
        business_tz: str | tzinfo = "UTC",
    ):
        self._fixed_time = fixed_time or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        self._advance_seconds = 0
        self.business_tz = _as_tz(business_tz)

    def now(self) -> datetime:
        return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def set_time(self, time: datetime) -> None:
        self._fixed_time = time
        self._advance_seconds = 0

    def advance(self, seconds: int = 1) -> None:
        self._advance_seconds += seconds

    def advance_days(self, days: int) -> None:
        self.advance(days * 86400)

    def tick(self) -> datetime:
        """Advance by 1 second and return the new time."""
        self.advance(1)
        return self.now()
