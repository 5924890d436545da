"""
pharmacy_services -- orchestration services that own transaction boundaries.

    StockMovementService        receipts and FEFO issues
    InventoryScanner            stock-level / expiry sweep and auto-resolve
    StockReconciliationService  repairs Product.current_stock from lots
"""

from pharmacy_services.inventory_scanner import InventoryScanner
from pharmacy_services.stock_movement_service import StockMovementService
from pharmacy_services.stock_reconciliation import (
    StockCorrection,
    StockReconciliationService,
)

__all__ = [
    "InventoryScanner",
    "StockCorrection",
    "StockMovementService",
    "StockReconciliationService",
]
