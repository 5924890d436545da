"""
Module: pharmacy_kernel.models.alert
Responsibility: ORM persistence for operational alerts raised by the
    inventory scanner (low stock, out of stock, expiring, expired).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Dedup key: at most one ACTIVE alert per
      (alert_type, product_id, inventory_lot_id).  Enforced by the partial
      unique index uq_alert_active_key (a missing lot is indexed as '');
      AlertService.create_or_update looks the key up first and falls back
      to the row that won when two writers insert at once.
    - Lifecycle: ACTIVE -> ACKNOWLEDGED (manual), ACTIVE -> RESOLVED
      (manual or automatic).  RESOLVED is terminal.

Audit relevance:
    acknowledged_by/at and resolved_by/at record who closed each alert.
    Auto-resolution is attributed to the system actor and marked in notes.
"""

from datetime import date, datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    func,
    literal_column,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pharmacy_kernel.db.base import TrackedBase, UUIDString
from pharmacy_kernel.domain.types import AlertSeverity, AlertStatus, AlertType

if TYPE_CHECKING:
    from pharmacy_kernel.models.inventory_lot import InventoryLot
    from pharmacy_kernel.models.product import Product


class Alert(TrackedBase):
    __tablename__ = "alerts"

    __table_args__ = (
        Index("idx_alert_dedup", "alert_type", "product_id", "inventory_lot_id", "status"),
        Index("idx_alert_status_severity", "status", "severity"),
        Index("idx_alert_warehouse", "warehouse_id"),
    )

    alert_type: Mapped[AlertType] = mapped_column(String(20), nullable=False)

    severity: Mapped[AlertSeverity] = mapped_column(
        String(20),
        nullable=False,
        default=AlertSeverity.MEDIUM,
    )

    status: Mapped[AlertStatus] = mapped_column(
        String(20),
        nullable=False,
        default=AlertStatus.ACTIVE,
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    # Snapshot of the product at detection time
    product_sku: Mapped[str] = mapped_column(String(64), nullable=False)
    product_name: Mapped[str] = mapped_column(String(250), nullable=False)

    warehouse_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("warehouses.id"),
        nullable=True,
    )

    inventory_lot_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_lots.id"),
        nullable=True,
    )

    lot_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    current_stock: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    minimum_stock: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    days_until_expiry: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    message: Mapped[str] = mapped_column(Text, nullable=False)

    acknowledged_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    acknowledged_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    resolved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    product: Mapped["Product"] = relationship()
    inventory_lot: Mapped["InventoryLot | None"] = relationship()

    @property
    def is_active(self) -> bool:
        return self.status == AlertStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Alert {self.alert_type} {self.severity} {self.status}>"


# One ACTIVE alert per dedup key; closed alerts may repeat the key freely
Index(
    "uq_alert_active_key",
    Alert.alert_type,
    Alert.product_id,
    func.coalesce(Alert.inventory_lot_id, literal_column("''")),
    unique=True,
    postgresql_where=text("status = 'ACTIVE'"),
    sqlite_where=text("status = 'ACTIVE'"),
)
