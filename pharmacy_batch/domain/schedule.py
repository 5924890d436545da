"""
Pure schedule evaluation functions.

Contract:
    ``parse_cron``, ``matches_cron`` and ``next_cron_match`` are PURE --
    no I/O, no side effects.  The scheduler supplies the current time from
    its injected clock.

Architecture: pharmacy_batch/domain.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta


# =============================================================================
# CronSpec (lightweight cron parser)
# =============================================================================


@dataclass(frozen=True)
class CronSpec:
    """Parsed cron expression (minute hour day_of_month month day_of_week).

    Each field is a frozenset of valid integer values.
    Supports: *, values, lists (1,15), ranges (1-5), steps (*/5, 1-10/2).
    """

    minutes: frozenset[int] = field(default_factory=lambda: frozenset(range(60)))
    hours: frozenset[int] = field(default_factory=lambda: frozenset(range(24)))
    days_of_month: frozenset[int] = field(default_factory=lambda: frozenset(range(1, 32)))
    months: frozenset[int] = field(default_factory=lambda: frozenset(range(1, 13)))
    days_of_week: frozenset[int] = field(default_factory=lambda: frozenset(range(7)))


def _parse_int(text: str, min_val: int, max_val: int) -> int:
    try:
        value = int(text)
    except ValueError:
        raise ValueError(f"Invalid cron value: '{text}'") from None
    if value < min_val or value > max_val:
        raise ValueError(f"Value {value} outside range [{min_val}, {max_val}]")
    return value


def _parse_cron_field(field_str: str, min_val: int, max_val: int) -> frozenset[int]:
    """Parse a single cron field into a frozenset of valid values.

    Supports:
        * -- all values
        N -- single value
        N-M -- range
        */N -- step from min
        N-M/S -- range with step

    Raises:
        ValueError: If the field is syntactically invalid or values out of range.
    """
    values: set[int] = set()

    for part in field_str.split(","):
        part = part.strip()
        if not part:
            raise ValueError(f"Empty cron field element in '{field_str}'")

        step = 1
        stepped = "/" in part
        if stepped:
            part, step_str = part.split("/", 1)
            step = _parse_int(step_str, 1, max_val)

        if part == "*":
            start, end = min_val, max_val
        elif "-" in part:
            s, e = part.split("-", 1)
            start, end = _parse_int(s, min_val, max_val), _parse_int(e, min_val, max_val)
            if start > end:
                raise ValueError(f"Range start > end: {start}-{end}")
        else:
            start = _parse_int(part, min_val, max_val)
            end = max_val if stepped else start

        values.update(range(start, end + 1, step))

    return frozenset(values)


def parse_cron(expression: str) -> CronSpec:
    """Parse a 5-field cron expression into a CronSpec.

    Format: ``minute hour day_of_month month day_of_week``

    Raises:
        ValueError: If expression is malformed.
    """
    parts = expression.strip().split()
    if len(parts) != 5:
        raise ValueError(
            f"Cron expression must have 5 fields, got {len(parts)}: '{expression}'"
        )

    return CronSpec(
        minutes=_parse_cron_field(parts[0], 0, 59),
        hours=_parse_cron_field(parts[1], 0, 23),
        days_of_month=_parse_cron_field(parts[2], 1, 31),
        months=_parse_cron_field(parts[3], 1, 12),
        days_of_week=_parse_cron_field(parts[4], 0, 6),
    )


def matches_cron(spec: CronSpec, dt: datetime) -> bool:
    """Check if a datetime matches a cron spec.

    Cron convention: 0=Sunday, 1=Monday, ..., 6=Saturday.
    Python datetime.weekday(): 0=Monday, ..., 6=Sunday.
    """
    cron_dow = (dt.weekday() + 1) % 7
    return (
        dt.minute in spec.minutes
        and dt.hour in spec.hours
        and dt.day in spec.days_of_month
        and dt.month in spec.months
        and cron_dow in spec.days_of_week
    )


def next_cron_match(spec: CronSpec, after: datetime) -> datetime:
    """Find the first minute strictly after ``after`` that matches the cron spec.

    Skips whole days that cannot match, then scans minute-by-minute within
    a candidate day.  Bounded to 366 days.

    Raises:
        ValueError: If no match found within 366 days.
    """
    candidate = after.replace(second=0, microsecond=0) + timedelta(minutes=1)
    limit = candidate + timedelta(days=366)

    while candidate < limit:
        cron_dow = (candidate.weekday() + 1) % 7
        if (
            candidate.month not in spec.months
            or candidate.day not in spec.days_of_month
            or cron_dow not in spec.days_of_week
        ):
            candidate = (candidate + timedelta(days=1)).replace(hour=0, minute=0)
            continue
        if matches_cron(spec, candidate):
            return candidate
        candidate += timedelta(minutes=1)

    raise ValueError(f"No cron match found within 366 days after {after}")
