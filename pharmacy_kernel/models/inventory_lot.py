"""
Module: pharmacy_kernel.models.inventory_lot
Responsibility: ORM persistence for the Lot Store -- the mutable record of
    available quantity per (product, warehouse, lot number, expiry date).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - quantity >= 0 (CHECK constraint; decrements are conditional UPDATEs).
    - Lot identity is (product_id, warehouse_id, lot_number, expiry_date).
      A receipt matching an existing identity increments quantity in place.
      The unique constraint covers the four fields; because SQL treats NULLs
      as distinct, lots without an expiry are matched with IS NULL by the
      movement service rather than by the constraint.
    - Lots are never deleted (before_delete guard in db/immutability.py).
      A zero-quantity lot stays as history and is excluded from allocation
      and expiry alerting.

Audit relevance:
    created_at is the FEFO tie-break after expiry date, so it is stamped
    from the injected clock when a receipt creates the lot.
"""

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pharmacy_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from pharmacy_kernel.models.product import Product
    from pharmacy_kernel.models.reference import Warehouse


class InventoryLot(TrackedBase):
    """A batch of one product held in one warehouse."""

    __tablename__ = "inventory_lots"

    __table_args__ = (
        UniqueConstraint(
            "product_id",
            "warehouse_id",
            "lot_number",
            "expiry_date",
            name="uq_lot_identity",
        ),
        CheckConstraint("quantity >= 0", name="chk_lot_quantity_non_negative"),
        Index("idx_lot_fefo", "product_id", "warehouse_id", "expiry_date"),
        Index("idx_lot_expiry", "expiry_date"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("warehouses.id"),
        nullable=False,
    )

    lot_number: Mapped[str] = mapped_column(String(100), nullable=False)

    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    quantity: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    unit_cost: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
    )

    product: Mapped["Product"] = relationship(lazy="joined")
    warehouse: Mapped["Warehouse"] = relationship()

    def __repr__(self) -> str:
        return (
            f"<InventoryLot {self.lot_number} qty={self.quantity} "
            f"exp={self.expiry_date}>"
        )
