"""
pharmacy_config -- single public entrypoint for inventory settings.

Responsibility:
    ``get_settings()`` returns the packaged defaults (``defaults.yaml``),
    merged with an optional override file, as a frozen ``InventorySettings``.

Architecture position:
    Configuration.  Sits above ``pharmacy_kernel`` and below
    ``pharmacy_services`` / ``pharmacy_batch``.  The kernel never imports
    from this package.

Environment:
    PHARMACY_INVENTORY_CONFIG  path of an override YAML file
    PHARMACY_DATABASE_URL      overrides database.url

Failure modes:
    - ``FileNotFoundError`` for a missing override file.
    - ``ValueError`` for invalid values, naming the key.
"""

from __future__ import annotations

import os
from pathlib import Path

from pharmacy_config.loader import deep_merge, load_yaml_file, parse_settings
from pharmacy_config.schema import (
    AlertSettings,
    AllocationSettings,
    DatabaseSettings,
    DocumentSettings,
    InventorySettings,
    JobDefinition,
    SchedulerSettings,
)
from pharmacy_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"
CONFIG_ENV_VAR = "PHARMACY_INVENTORY_CONFIG"
DATABASE_URL_ENV_VAR = "PHARMACY_DATABASE_URL"


def get_settings(path: Path | str | None = None) -> InventorySettings:
    """
    Load settings: packaged defaults <- override file <- environment.

    Args:
        path: Override YAML file.  Falls back to $PHARMACY_INVENTORY_CONFIG.
    """
    data = load_yaml_file(DEFAULTS_PATH)

    override = path or os.environ.get(CONFIG_ENV_VAR)
    if override:
        data = deep_merge(data, load_yaml_file(Path(override)))

    database_url = os.environ.get(DATABASE_URL_ENV_VAR)
    if database_url:
        data = deep_merge(data, {"database": {"url": database_url}})

    settings = parse_settings(data)
    _logger.info(
        "settings_loaded",
        extra={
            "override_path": str(override) if override else None,
            "job_count": len(settings.scheduler.jobs),
        },
    )
    return settings


__all__ = [
    "AlertSettings",
    "AllocationSettings",
    "DatabaseSettings",
    "DocumentSettings",
    "InventorySettings",
    "JobDefinition",
    "SchedulerSettings",
    "get_settings",
]
