"""pharmacy_batch.domain -- pure schedule evaluation (ZERO I/O)."""

from pharmacy_batch.domain.schedule import (
    CronSpec,
    matches_cron,
    next_cron_match,
    parse_cron,
)

__all__ = [
    "CronSpec",
    "matches_cron",
    "next_cron_match",
    "parse_cron",
]
