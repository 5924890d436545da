"""
Module: pharmacy_kernel.models.product
Responsibility: ORM persistence for catalog products.  Catalog CRUD is owned
    elsewhere; this core reads minimum_stock/is_active and maintains the
    denormalized current_stock counter.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - current_stock is the sum of this product's lot quantities across all
      warehouses.  The movement service adjusts it in the same atomic unit
      as the lot mutation; StockReconciliationService repairs drift.

Audit relevance:
    current_stock drives the low-stock scan directly, so drift shows up as
    spurious or missing LOW_STOCK/OUT_OF_STOCK alerts.
"""

from decimal import Decimal

from sqlalchemy import BigInteger, Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pharmacy_kernel.db.base import TrackedBase


class Product(TrackedBase):
    """A stocked product (tablets, vials, bottles...)."""

    __tablename__ = "products"

    __table_args__ = (
        UniqueConstraint("sku", name="uq_product_sku"),
        Index("idx_product_active", "is_active"),
        Index("idx_product_name", "name"),
    )

    sku: Mapped[str] = mapped_column(String(64), nullable=False)

    name: Mapped[str] = mapped_column(String(250), nullable=False)

    # Dispensing unit label
    unit: Mapped[str] = mapped_column(String(32), nullable=False)

    # Low-stock threshold
    minimum_stock: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    # Denormalized total across all lots
    current_stock: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    average_cost: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    def __repr__(self) -> str:
        return f"<Product {self.sku}: {self.name}>"
