"""
Inventory Scanner (``pharmacy_services.inventory_scanner``).

Responsibility
--------------
The Alert Engine sweep.  Reads product stock counters and lot expiry
dates, raises or refreshes deduplicated alerts through ``AlertService``,
and auto-resolves ACTIVE alerts whose triggering condition has cleared.

Architecture
------------
Layer: **Services**.  Called by the scheduled tasks in
``pharmacy_batch.tasks.inventory_tasks`` and by manual "run now" triggers;
both paths use the same methods.  Severity banding is delegated to the
pure ``pharmacy_engines.severity`` functions.

Invariants
----------
- Bulkhead isolation: each product, lot and alert is processed inside its
  own SAVEPOINT.  A failure rolls back that item only, is recorded as a
  ``ScanError``, and the sweep continues.
- At most one ACTIVE alert per (alert_type, product_id, inventory_lot_id);
  repeated sweeps refresh the existing alert.
- Safe to run repeatedly and alongside in-flight movements.  A sweep may
  observe a transient state; the next pass corrects it.

Failure Modes
-------------
- Per-item errors are collected, never raised.
- ``PersistenceError`` when the sweep's own reads or final commit fail.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pharmacy_config import InventorySettings
from pharmacy_engines.severity import SeverityBands, classify_expiry, classify_stock
from pharmacy_kernel.domain.clock import Clock, SystemClock
from pharmacy_kernel.domain.dtos import AlertCondition, ScanError, ScanResult
from pharmacy_kernel.domain.types import (
    EXPIRY_ALERT_TYPES,
    AlertStatus,
    AlertType,
)
from pharmacy_kernel.exceptions import PersistenceError
from pharmacy_kernel.logging_config import get_logger
from pharmacy_kernel.models.alert import Alert
from pharmacy_kernel.models.inventory_lot import InventoryLot
from pharmacy_kernel.models.product import Product
from pharmacy_kernel.services.alert_service import AlertService

logger = get_logger("services.inventory_scanner")

REASON_STOCK_REPLENISHED = "stock replenished"
REASON_LOT_DEPLETED = "lot depleted"
REASON_SOURCE_MISSING = "source record no longer exists"


def bands_from_settings(settings: InventorySettings) -> SeverityBands:
    alerts = settings.alerts
    return SeverityBands(
        critical_ratio=alerts.critical_ratio,
        high_ratio=alerts.high_ratio,
        medium_ratio=alerts.medium_ratio,
        high_days=alerts.high_days,
        medium_days=alerts.medium_days,
        expiry_horizon_days=alerts.expiry_horizon_days,
    )


def stock_message(product: Product, alert_type: AlertType) -> str:
    if alert_type == AlertType.OUT_OF_STOCK:
        return f"{product.name} (SKU: {product.sku}) is out of stock"
    return (
        f"{product.name} (SKU: {product.sku}) is low on stock: "
        f"{product.current_stock}/{product.minimum_stock} {product.unit}"
    )


def expiry_message(lot: InventoryLot, product: Product, days: int) -> str:
    if days < 0:
        return f"Lot {lot.lot_number} of {product.name} expired {abs(days)} days ago"
    return f"Lot {lot.lot_number} of {product.name} expires in {days} days"


@dataclass
class _Tally:
    low_stock: int = 0
    out_of_stock: int = 0
    expiring_soon: int = 0
    expired: int = 0
    total_alerts: int = 0
    auto_resolved: int = 0
    errors: list[ScanError] = field(default_factory=list)

    def count(self, alert_type: AlertType) -> None:
        if alert_type == AlertType.LOW_STOCK:
            self.low_stock += 1
        elif alert_type == AlertType.OUT_OF_STOCK:
            self.out_of_stock += 1
        elif alert_type == AlertType.EXPIRING_SOON:
            self.expiring_soon += 1
        elif alert_type == AlertType.EXPIRED:
            self.expired += 1
        self.total_alerts += 1

    def to_result(self) -> ScanResult:
        return ScanResult(
            low_stock=self.low_stock,
            out_of_stock=self.out_of_stock,
            expiring_soon=self.expiring_soon,
            expired=self.expired,
            total_alerts=self.total_alerts,
            auto_resolved=self.auto_resolved,
            errors=tuple(self.errors),
        )


class InventoryScanner:
    """
    Periodic stock-level and expiry sweep.

    Transaction boundary: with ``auto_commit=True`` (default) each public
    method commits once at the end of the sweep.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: InventorySettings | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._settings = settings or InventorySettings()
        self._clock = clock or SystemClock(self._settings.scheduler.timezone)
        self._bands = bands_from_settings(self._settings)
        self._alerts = AlertService(session, clock=self._clock)
        self._auto_commit = auto_commit

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def scan_stock_levels(self) -> ScanResult:
        """Raise or refresh LOW_STOCK / OUT_OF_STOCK for every active product."""
        tally = _Tally()
        self._run("scan_stock_levels", lambda: self._scan_stock_levels(tally))
        return tally.to_result()

    def scan_expiry_dates(self) -> ScanResult:
        """Raise or refresh EXPIRING_SOON / EXPIRED for every stocked, dated lot."""
        tally = _Tally()
        self._run("scan_expiry_dates", lambda: self._scan_expiry_dates(tally))
        return tally.to_result()

    def auto_resolve_alerts(self) -> ScanResult:
        """Resolve every ACTIVE alert whose condition no longer holds."""
        tally = _Tally()
        self._run("auto_resolve_alerts", lambda: self._auto_resolve(tally))
        return tally.to_result()

    def scan_inventory(self) -> ScanResult:
        """
        Full sweep: stock levels, then expiry dates, then (when
        ``alerts.auto_resolve_after_scan`` is set) the auto-resolve pass.
        """
        tally = _Tally()

        def sweep() -> None:
            self._scan_stock_levels(tally)
            self._scan_expiry_dates(tally)
            if self._settings.alerts.auto_resolve_after_scan:
                self._auto_resolve(tally)

        self._run("scan_inventory", sweep)
        result = tally.to_result()
        logger.info("scan_completed", extra=result.to_dict())
        return result

    # ------------------------------------------------------------------
    # Transaction boundary and bulkhead
    # ------------------------------------------------------------------

    def _run(self, operation: str, sweep) -> None:
        logger.info("scan_started", extra={"operation": operation})
        try:
            sweep()
            if self._auto_commit:
                self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            logger.error("scan_failed", extra={"operation": operation}, exc_info=True)
            raise PersistenceError(operation, str(exc)) from exc
        except Exception:
            self._session.rollback()
            raise

    def _isolated(self, tally: _Tally, item_type: str, item_id, work) -> None:
        savepoint = self._session.begin_nested()
        try:
            work()
            savepoint.commit()
        except Exception as exc:
            savepoint.rollback()
            tally.errors.append(ScanError(item_type=item_type, item_id=str(item_id), error=str(exc)))
            logger.warning(
                "scan_item_failed",
                extra={"item_type": item_type, "item_id": str(item_id)},
                exc_info=True,
            )

    # ------------------------------------------------------------------
    # Stock levels
    # ------------------------------------------------------------------

    def _scan_stock_levels(self, tally: _Tally) -> None:
        product_ids = self._session.execute(
            select(Product.id).where(Product.is_active.is_(True)).order_by(Product.sku)
        ).scalars().all()
        for product_id in product_ids:
            self._isolated(
                tally, "product", product_id,
                lambda pid=product_id: self._check_product(pid, tally),
            )

    def _check_product(self, product_id, tally: _Tally) -> None:
        product = self._session.get(Product, product_id, populate_existing=True)
        classification = classify_stock(product.current_stock, product.minimum_stock, self._bands)
        if classification is None:
            return

        self._alerts.create_or_update(
            AlertCondition(
                alert_type=classification.alert_type,
                severity=classification.severity,
                product_id=product.id,
                product_sku=product.sku,
                product_name=product.name,
                message=stock_message(product, classification.alert_type),
                current_stock=product.current_stock,
                minimum_stock=product.minimum_stock,
            )
        )
        tally.count(classification.alert_type)

    # ------------------------------------------------------------------
    # Expiry dates
    # ------------------------------------------------------------------

    def _scan_expiry_dates(self, tally: _Tally) -> None:
        lot_ids = self._session.execute(
            select(InventoryLot.id)
            .join(Product, Product.id == InventoryLot.product_id)
            .where(
                InventoryLot.quantity > 0,
                InventoryLot.expiry_date.is_not(None),
            )
            .order_by(InventoryLot.expiry_date, InventoryLot.id)
        ).scalars().all()
        for lot_id in lot_ids:
            self._isolated(
                tally, "lot", lot_id,
                lambda lid=lot_id: self._check_lot(lid, tally),
            )

    def _check_lot(self, lot_id, tally: _Tally) -> None:
        lot = self._session.get(InventoryLot, lot_id, populate_existing=True)
        days = (lot.expiry_date - self._clock.today()).days
        classification = classify_expiry(days, self._bands)
        if classification is None:
            return

        product = lot.product
        self._alerts.create_or_update(
            AlertCondition(
                alert_type=classification.alert_type,
                severity=classification.severity,
                product_id=product.id,
                product_sku=product.sku,
                product_name=product.name,
                message=expiry_message(lot, product, days),
                warehouse_id=lot.warehouse_id,
                inventory_lot_id=lot.id,
                current_stock=lot.quantity,
                minimum_stock=product.minimum_stock,
                lot_number=lot.lot_number,
                expiry_date=lot.expiry_date,
                days_until_expiry=days,
            )
        )
        tally.count(classification.alert_type)

    # ------------------------------------------------------------------
    # Auto-resolve
    # ------------------------------------------------------------------

    def _auto_resolve(self, tally: _Tally) -> None:
        alert_ids = self._session.execute(
            select(Alert.id)
            .where(Alert.status == AlertStatus.ACTIVE)
            .order_by(Alert.created_at, Alert.id)
        ).scalars().all()
        for alert_id in alert_ids:
            self._isolated(
                tally, "alert", alert_id,
                lambda aid=alert_id: self._resolve_if_cleared(aid, tally),
            )

    def cleared_reason(self, alert: Alert) -> str | None:
        """Why the alert's condition no longer holds, or None while it still does."""
        alert_type = AlertType(alert.alert_type)

        if alert_type in EXPIRY_ALERT_TYPES:
            if alert.inventory_lot_id is None:
                return REASON_SOURCE_MISSING
            lot = self._session.get(InventoryLot, alert.inventory_lot_id, populate_existing=True)
            if lot is None:
                return REASON_SOURCE_MISSING
            return REASON_LOT_DEPLETED if lot.quantity <= 0 else None

        product = self._session.get(Product, alert.product_id, populate_existing=True)
        if product is None:
            return REASON_SOURCE_MISSING
        replenished = product.current_stock >= product.minimum_stock
        if alert_type == AlertType.OUT_OF_STOCK:
            # A zero minimum would otherwise clear the alert the scan just raised
            replenished = replenished and product.current_stock > 0
        return REASON_STOCK_REPLENISHED if replenished else None

    def _resolve_if_cleared(self, alert_id, tally: _Tally) -> None:
        alert = self._session.get(Alert, alert_id, populate_existing=True)
        if alert is None or alert.status != AlertStatus.ACTIVE:
            return
        reason = self.cleared_reason(alert)
        if reason is None:
            return
        self._alerts.auto_resolve(alert, reason)
        tally.auto_resolved += 1
