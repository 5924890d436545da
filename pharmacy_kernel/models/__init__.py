"""ORM models for the pharmacy inventory kernel."""

from pharmacy_kernel.models.alert import Alert
from pharmacy_kernel.models.inventory_issue import (
    InventoryIssue,
    InventoryIssueAllocation,
    InventoryIssueLine,
)
from pharmacy_kernel.models.inventory_lot import InventoryLot
from pharmacy_kernel.models.product import Product
from pharmacy_kernel.models.reference import Department, Supplier, Warehouse
from pharmacy_kernel.models.stock_transaction import StockTransaction, TransactionDetail
from pharmacy_kernel.services.sequence_service import SequenceCounter

__all__ = [
    "Alert",
    "Department",
    "InventoryIssue",
    "InventoryIssueAllocation",
    "InventoryIssueLine",
    "InventoryLot",
    "Product",
    "SequenceCounter",
    "StockTransaction",
    "Supplier",
    "TransactionDetail",
    "Warehouse",
]
