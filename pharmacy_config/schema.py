"""
Settings schema (``pharmacy_config.schema``).

Frozen dataclasses for every configurable value of the inventory core.
Each validates itself in ``__post_init__`` so that an invalid YAML value
fails at load time with the offending key in the message.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///pharmacy_inventory.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10

    def __post_init__(self):
        if not self.url:
            raise ValueError("database.url must not be empty")
        if self.pool_size < 1:
            raise ValueError(f"database.pool_size must be >= 1, got {self.pool_size}")


@dataclass(frozen=True)
class AlertSettings:
    expiry_horizon_days: int = 30
    critical_ratio: Decimal = Decimal("0.25")
    high_ratio: Decimal = Decimal("0.50")
    medium_ratio: Decimal = Decimal("0.75")
    high_days: int = 7
    medium_days: int = 15
    auto_resolve_after_scan: bool = True

    def __post_init__(self):
        if self.expiry_horizon_days < 0:
            raise ValueError("alerts.expiry_horizon_days must be >= 0")
        if not (Decimal("0") < self.critical_ratio <= self.high_ratio <= self.medium_ratio <= Decimal("1")):
            raise ValueError(
                "alerts.stock_ratio_bands must satisfy 0 < critical <= high <= medium <= 1"
            )
        if not (0 <= self.high_days <= self.medium_days <= self.expiry_horizon_days):
            raise ValueError(
                "alerts.expiry_day_bands must satisfy 0 <= high <= medium <= expiry_horizon_days"
            )


@dataclass(frozen=True)
class DocumentSettings:
    issue_code_prefix: str = "PX"
    issue_sequence_padding: int = 3
    lot_number_prefix: str = "LOT"

    def __post_init__(self):
        if not self.issue_code_prefix:
            raise ValueError("documents.issue_code_prefix must not be empty")
        if self.issue_sequence_padding < 1:
            raise ValueError("documents.issue_sequence_padding must be >= 1")
        if not self.lot_number_prefix:
            raise ValueError("documents.lot_number_prefix must not be empty")


@dataclass(frozen=True)
class AllocationSettings:
    max_allocation_attempts: int = 3

    def __post_init__(self):
        if self.max_allocation_attempts < 1:
            raise ValueError("allocation.max_allocation_attempts must be >= 1")


@dataclass(frozen=True)
class JobDefinition:
    name: str
    task_type: str
    cron: str
    enabled: bool = True

    def __post_init__(self):
        if not self.name:
            raise ValueError("scheduler.jobs[].name must not be empty")
        if len(self.cron.split()) != 5:
            raise ValueError(
                f"scheduler.jobs[{self.name}].cron must have 5 fields, got {self.cron!r}"
            )


@dataclass(frozen=True)
class SchedulerSettings:
    timezone: str = "UTC"
    tick_interval_seconds: float = 60.0
    jobs: tuple[JobDefinition, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if self.tick_interval_seconds <= 0:
            raise ValueError("scheduler.tick_interval_seconds must be > 0")
        names = [j.name for j in self.jobs]
        if len(names) != len(set(names)):
            raise ValueError("scheduler.jobs names must be unique")


@dataclass(frozen=True)
class InventorySettings:
    """Root settings object returned by ``get_settings()``."""

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    alerts: AlertSettings = field(default_factory=AlertSettings)
    documents: DocumentSettings = field(default_factory=DocumentSettings)
    allocation: AllocationSettings = field(default_factory=AllocationSettings)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
