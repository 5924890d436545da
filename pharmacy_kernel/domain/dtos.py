"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that cross the service boundary:
    movement requests (ReceiptRequest, IssueRequest and their lines), movement
    results, the allocation engine's LotCandidate/LotPick, alert snapshots,
    and read-side views (stock levels, expiring lots, product suggestions,
    ledger documents, pages).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Free of ORM dependencies.  from_model() class methods are boundary
    converters invoked only from the service and selector layers.

Invariants enforced:
    - Services accept and return DTOs, never ORM entities.
    - Quantities are ints, prices and totals are Decimal.

Data flow:
    ReceiptRequest -> StockMovementService.receive -> ReceiptResult
    IssueRequest   -> StockMovementService.issue   -> IssueResult
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from pharmacy_kernel.domain.types import (
    AlertSeverity,
    AlertStatus,
    AlertType,
    TransactionStatus,
    TransactionType,
)

if TYPE_CHECKING:
    from pharmacy_kernel.models.alert import Alert as AlertModel
    from pharmacy_kernel.models.inventory_lot import InventoryLot as InventoryLotModel


# =============================================================================
# Movement requests
# =============================================================================


@dataclass(frozen=True)
class ReceiptLine:
    """One received product line.  lot_number is generated when omitted."""

    product_id: UUID
    quantity: int
    unit_price: Decimal
    lot_number: str | None = None
    expiry_date: date | None = None


@dataclass(frozen=True)
class ReceiptRequest:
    warehouse_id: UUID
    supplier_id: UUID
    lines: tuple[ReceiptLine, ...]
    transaction_date: datetime | None = None
    reference_code: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class ManualLotAllocation:
    """Caller-chosen draw from a named lot, bypassing FEFO."""

    lot_id: UUID
    quantity: int


@dataclass(frozen=True)
class IssueLine:
    product_id: UUID
    quantity: int
    unit_price: Decimal
    lot_allocations: tuple[ManualLotAllocation, ...] = ()


@dataclass(frozen=True)
class IssueRequest:
    """
    Outbound issue to a department.

    The department is named, not referenced by id: an existing department
    with this name is used, otherwise one is created with the movement.
    """

    warehouse_id: UUID
    department_name: str
    lines: tuple[IssueLine, ...]
    issue_date: datetime | None = None
    notes: str | None = None


# =============================================================================
# Allocation engine
# =============================================================================


@dataclass(frozen=True)
class LotCandidate:
    """A lot as seen by the allocation engine."""

    lot_id: UUID
    quantity: int
    expiry_date: date | None
    created_at: datetime

    @classmethod
    def from_model(cls, lot: InventoryLotModel) -> LotCandidate:
        return cls(
            lot_id=lot.id,
            quantity=lot.quantity,
            expiry_date=lot.expiry_date,
            created_at=lot.created_at,
        )

    @property
    def fefo_key(self) -> tuple:
        """
        Ascending FEFO order: lots with an expiry before lots without one,
        then soonest expiry, then creation order, then id.
        """
        return (
            self.expiry_date is None,
            self.expiry_date or date.max,
            self.created_at,
            str(self.lot_id),
        )


@dataclass(frozen=True)
class LotPick:
    lot_id: UUID
    pick_qty: int


# =============================================================================
# Movement results
# =============================================================================


@dataclass(frozen=True)
class ReceivedLot:
    lot_id: UUID
    product_id: UUID
    lot_number: str
    expiry_date: date | None
    quantity_received: int
    quantity_after: int
    created: bool


@dataclass(frozen=True)
class ReceiptResult:
    transaction_id: UUID
    lots: tuple[ReceivedLot, ...]
    total_amount: Decimal


@dataclass(frozen=True)
class IssueAllocation:
    product_id: UUID
    lot_id: UUID
    lot_number: str
    expiry_date: date | None
    quantity: int
    unit_price: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class IssueResult:
    issue_id: UUID
    issue_code: str
    transaction_id: UUID
    department_id: UUID
    allocations: tuple[IssueAllocation, ...]
    total_amount: Decimal


# =============================================================================
# Alerts
# =============================================================================


@dataclass(frozen=True)
class AlertInfo:
    """Read-side snapshot of an alert record."""

    id: UUID
    alert_type: AlertType
    severity: AlertSeverity
    status: AlertStatus
    product_id: UUID
    warehouse_id: UUID | None
    inventory_lot_id: UUID | None
    message: str
    current_stock: int | None
    minimum_stock: int | None
    lot_number: str | None
    expiry_date: date | None
    days_until_expiry: int | None
    notes: str | None
    acknowledged_by_id: UUID | None
    acknowledged_at: datetime | None
    resolved_by_id: UUID | None
    resolved_at: datetime | None
    created_at: datetime
    product_name: str | None = None
    product_sku: str | None = None

    @classmethod
    def from_model(cls, alert: AlertModel) -> AlertInfo:
        return cls(
            id=alert.id,
            alert_type=AlertType(alert.alert_type),
            severity=AlertSeverity(alert.severity),
            status=AlertStatus(alert.status),
            product_id=alert.product_id,
            warehouse_id=alert.warehouse_id,
            inventory_lot_id=alert.inventory_lot_id,
            message=alert.message,
            current_stock=alert.current_stock,
            minimum_stock=alert.minimum_stock,
            lot_number=alert.lot_number,
            expiry_date=alert.expiry_date,
            days_until_expiry=alert.days_until_expiry,
            notes=alert.notes,
            acknowledged_by_id=alert.acknowledged_by_id,
            acknowledged_at=alert.acknowledged_at,
            resolved_by_id=alert.resolved_by_id,
            resolved_at=alert.resolved_at,
            created_at=alert.created_at,
            product_name=alert.product_name,
            product_sku=alert.product_sku,
        )


@dataclass(frozen=True)
class AlertCondition:
    """
    A detected condition the scanner wants recorded.

    (alert_type, product_id, inventory_lot_id) plus status ACTIVE is the
    dedup key; every other field is a refreshable snapshot.
    """

    alert_type: AlertType
    severity: AlertSeverity
    product_id: UUID
    product_sku: str
    product_name: str
    message: str
    warehouse_id: UUID | None = None
    inventory_lot_id: UUID | None = None
    current_stock: int | None = None
    minimum_stock: int | None = None
    lot_number: str | None = None
    expiry_date: date | None = None
    days_until_expiry: int | None = None


@dataclass(frozen=True)
class ScanError:
    """One item the sweep could not process."""

    item_type: str
    item_id: str
    error: str


@dataclass(frozen=True)
class ScanResult:
    """Counters from a sweep.  total_alerts counts alerts created or refreshed."""

    low_stock: int = 0
    out_of_stock: int = 0
    expiring_soon: int = 0
    expired: int = 0
    total_alerts: int = 0
    auto_resolved: int = 0
    errors: tuple[ScanError, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "low_stock": self.low_stock,
            "out_of_stock": self.out_of_stock,
            "expiring_soon": self.expiring_soon,
            "expired": self.expired,
            "total_alerts": self.total_alerts,
            "auto_resolved": self.auto_resolved,
            "errors": [
                {"item_type": e.item_type, "item_id": e.item_id, "error": e.error}
                for e in self.errors
            ],
        }


@dataclass(frozen=True)
class AlertSummary:
    total_alerts: int
    expiring_soon: int
    low_stock: int


@dataclass(frozen=True)
class AlertStatistics:
    by_severity: dict[str, int]
    by_type: dict[str, int]
    total_active: int


# =============================================================================
# Read-side views
# =============================================================================


@dataclass(frozen=True)
class Page:
    """A page of results plus pagination metadata."""

    items: tuple[Any, ...]
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        if self.limit <= 0:
            return 0
        return (self.total + self.limit - 1) // self.limit


@dataclass(frozen=True)
class StockLevel:
    product_id: UUID
    warehouse_id: UUID
    stock_qty: int
    nearest_expiry: date | None
    stock_value: Decimal


@dataclass(frozen=True)
class ExpiringLot:
    lot_id: UUID
    product_id: UUID
    warehouse_id: UUID
    lot_number: str
    expiry_date: date
    quantity: int
    days_left: int


@dataclass(frozen=True)
class ProductSuggestion:
    product_id: UUID
    sku: str
    name: str
    unit: str
    available_qty: int
    nearest_expiry: date | None
    unit_price: Decimal | None


@dataclass(frozen=True)
class TransactionLine:
    id: UUID
    product_id: UUID
    inventory_lot_id: UUID | None
    quantity: int
    unit_price: Decimal


@dataclass(frozen=True)
class TransactionDocument:
    id: UUID
    transaction_type: TransactionType
    status: TransactionStatus
    transaction_date: datetime
    user_id: UUID
    reference_code: str | None
    source_warehouse_id: UUID | None
    destination_warehouse_id: UUID | None
    supplier_id: UUID | None
    department_id: UUID | None
    notes: str | None
    lines: tuple[TransactionLine, ...] = field(default_factory=tuple)

    @property
    def total_amount(self) -> Decimal:
        return sum((l.unit_price * l.quantity for l in self.lines), Decimal("0"))


@dataclass(frozen=True)
class MovementTotals:
    """Ledger quantity totals for a product over a window."""

    product_id: UUID
    inbound: int
    outbound: int

    @property
    def net(self) -> int:
        return self.inbound - self.outbound
