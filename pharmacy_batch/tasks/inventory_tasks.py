"""
Batch tasks: inventory sweeps (alert scan, auto-resolve, stock reconciliation).
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from pharmacy_config import InventorySettings
from pharmacy_kernel.domain.clock import Clock
from pharmacy_services.inventory_scanner import InventoryScanner
from pharmacy_services.stock_reconciliation import StockReconciliationService


class InventoryScanTask:
    """Full stock-level and expiry sweep."""

    @property
    def task_type(self) -> str:
        return "inventory.scan"

    @property
    def description(self) -> str:
        return "Scan stock levels and expiry dates and raise alerts"

    def run(self, session: Session, clock: Clock, settings: InventorySettings) -> dict[str, Any]:
        return InventoryScanner(session, clock=clock, settings=settings).scan_inventory().to_dict()


class AutoResolveAlertsTask:
    """Resolve ACTIVE alerts whose condition has cleared."""

    @property
    def task_type(self) -> str:
        return "inventory.auto_resolve"

    @property
    def description(self) -> str:
        return "Auto-resolve alerts whose condition has cleared"

    def run(self, session: Session, clock: Clock, settings: InventorySettings) -> dict[str, Any]:
        return InventoryScanner(session, clock=clock, settings=settings).auto_resolve_alerts().to_dict()


class ReconcileCurrentStockTask:
    """Recompute Product.current_stock from lot quantities."""

    @property
    def task_type(self) -> str:
        return "inventory.reconcile_current_stock"

    @property
    def description(self) -> str:
        return "Repair product stock counters from lot quantities"

    def run(self, session: Session, clock: Clock, settings: InventorySettings) -> dict[str, Any]:
        corrections = StockReconciliationService(session, clock=clock).reconcile_current_stock()
        return {
            "corrections": [
                {
                    "product_id": str(c.product_id),
                    "sku": c.sku,
                    "recorded": c.recorded,
                    "actual": c.actual,
                }
                for c in corrections
            ],
        }
