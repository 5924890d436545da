"""
Module: pharmacy_engines.severity
Responsibility:
    Classify stock levels and expiry horizons into alert type and severity.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Bands (defaults, configurable via SeverityBands):

    Stock ratio = current / minimum (only when current < minimum)
        current <= 0     OUT_OF_STOCK  CRITICAL
        ratio <= 0.25    LOW_STOCK     CRITICAL
        ratio <= 0.50    LOW_STOCK     HIGH
        ratio <= 0.75    LOW_STOCK     MEDIUM
        otherwise        LOW_STOCK     LOW

    Days until expiry
        < 0              EXPIRED       CRITICAL
        <= 7             EXPIRING_SOON HIGH
        <= 15            EXPIRING_SOON MEDIUM
        <= 30            EXPIRING_SOON LOW
        > 30             no alert

Ratio comparisons are done in Decimal (current <= threshold * minimum) so
boundary values such as exactly 25% land in the stricter band.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from pharmacy_kernel.domain.types import AlertSeverity, AlertType


@dataclass(frozen=True)
class SeverityBands:
    critical_ratio: Decimal = Decimal("0.25")
    high_ratio: Decimal = Decimal("0.50")
    medium_ratio: Decimal = Decimal("0.75")
    high_days: int = 7
    medium_days: int = 15
    expiry_horizon_days: int = 30

    def __post_init__(self):
        if not (Decimal("0") < self.critical_ratio <= self.high_ratio <= self.medium_ratio <= Decimal("1")):
            raise ValueError("stock ratio bands must satisfy 0 < critical <= high <= medium <= 1")
        if not (0 <= self.high_days <= self.medium_days <= self.expiry_horizon_days):
            raise ValueError("expiry day bands must satisfy 0 <= high <= medium <= horizon")


DEFAULT_BANDS = SeverityBands()


@dataclass(frozen=True)
class StockClassification:
    alert_type: AlertType
    severity: AlertSeverity


@dataclass(frozen=True)
class ExpiryClassification:
    alert_type: AlertType
    severity: AlertSeverity
    days_until_expiry: int


def classify_stock(
    current_stock: int,
    minimum_stock: int,
    bands: SeverityBands = DEFAULT_BANDS,
) -> StockClassification | None:
    """Stock alert for a product, or None when stock is at or above minimum."""
    if current_stock <= 0:
        return StockClassification(AlertType.OUT_OF_STOCK, AlertSeverity.CRITICAL)
    if current_stock >= minimum_stock:
        return None

    current = Decimal(current_stock)
    minimum = Decimal(minimum_stock)
    if current <= bands.critical_ratio * minimum:
        severity = AlertSeverity.CRITICAL
    elif current <= bands.high_ratio * minimum:
        severity = AlertSeverity.HIGH
    elif current <= bands.medium_ratio * minimum:
        severity = AlertSeverity.MEDIUM
    else:
        severity = AlertSeverity.LOW
    return StockClassification(AlertType.LOW_STOCK, severity)


def classify_expiry(
    days_until_expiry: int,
    bands: SeverityBands = DEFAULT_BANDS,
) -> ExpiryClassification | None:
    """Expiry alert for a stocked lot, or None when beyond the horizon."""
    if days_until_expiry < 0:
        return ExpiryClassification(AlertType.EXPIRED, AlertSeverity.CRITICAL, days_until_expiry)
    if days_until_expiry > bands.expiry_horizon_days:
        return None
    if days_until_expiry <= bands.high_days:
        severity = AlertSeverity.HIGH
    elif days_until_expiry <= bands.medium_days:
        severity = AlertSeverity.MEDIUM
    else:
        severity = AlertSeverity.LOW
    return ExpiryClassification(AlertType.EXPIRING_SOON, severity, days_until_expiry)
