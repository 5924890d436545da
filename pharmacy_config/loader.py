"""
Configuration Loader (``pharmacy_config.loader``).

Loads YAML documents and parses them into ``pharmacy_config.schema``
frozen dataclasses.  Runtime callers go through
``pharmacy_config.get_settings()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ValueError`` naming the key.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from pharmacy_config.schema import (
    AlertSettings,
    AllocationSettings,
    DatabaseSettings,
    DocumentSettings,
    InventorySettings,
    JobDefinition,
    SchedulerSettings,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML value must be a mapping")
    return data


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``.  Lists are replaced."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def parse_decimal(value: Any, key: str) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{key} must be a decimal number, got {value!r}") from exc


def parse_alerts(data: dict[str, Any]) -> AlertSettings:
    ratios = data.get("stock_ratio_bands", {})
    days = data.get("expiry_day_bands", {})
    defaults = AlertSettings()
    return AlertSettings(
        expiry_horizon_days=int(data.get("expiry_horizon_days", defaults.expiry_horizon_days)),
        critical_ratio=parse_decimal(
            ratios.get("critical", defaults.critical_ratio), "alerts.stock_ratio_bands.critical"
        ),
        high_ratio=parse_decimal(
            ratios.get("high", defaults.high_ratio), "alerts.stock_ratio_bands.high"
        ),
        medium_ratio=parse_decimal(
            ratios.get("medium", defaults.medium_ratio), "alerts.stock_ratio_bands.medium"
        ),
        high_days=int(days.get("high", defaults.high_days)),
        medium_days=int(days.get("medium", defaults.medium_days)),
        auto_resolve_after_scan=bool(
            data.get("auto_resolve_after_scan", defaults.auto_resolve_after_scan)
        ),
    )


def parse_scheduler(data: dict[str, Any]) -> SchedulerSettings:
    jobs = tuple(
        JobDefinition(
            name=job["name"],
            task_type=job["task_type"],
            cron=job["cron"],
            enabled=bool(job.get("enabled", True)),
        )
        for job in data.get("jobs", [])
    )
    return SchedulerSettings(
        timezone=data.get("timezone", "UTC"),
        tick_interval_seconds=float(data.get("tick_interval_seconds", 60)),
        jobs=jobs,
    )


def parse_settings(data: dict[str, Any]) -> InventorySettings:
    """Build InventorySettings from a merged settings dict."""
    return InventorySettings(
        database=DatabaseSettings(**data.get("database", {})),
        alerts=parse_alerts(data.get("alerts", {})),
        documents=DocumentSettings(**data.get("documents", {})),
        allocation=AllocationSettings(**data.get("allocation", {})),
        scheduler=parse_scheduler(data.get("scheduler", {})),
    )
