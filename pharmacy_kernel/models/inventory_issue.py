"""
Module: pharmacy_kernel.models.inventory_issue
Responsibility: ORM persistence for issue documents -- the business record of
    an outbound issue to a department, with its lines and per-lot allocations.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - issue_code is unique (PX-YYYYMMDD-NNN from a per-day counter).
    - Written in the same atomic unit as the OUTBOUND StockTransaction it
      references and the lot decrements it describes.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pharmacy_kernel.db.base import TrackedBase, UUIDString


class InventoryIssue(TrackedBase):
    __tablename__ = "inventory_issues"

    __table_args__ = (
        UniqueConstraint("issue_code", name="uq_issue_code"),
        Index("idx_issue_date", "issue_date"),
    )

    issue_code: Mapped[str] = mapped_column(String(64), nullable=False)

    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("warehouses.id"),
        nullable=False,
    )

    department_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("departments.id"),
        nullable=False,
    )

    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("stock_transactions.id"),
        nullable=False,
    )

    issue_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    total_amount: Mapped[Decimal] = mapped_column(nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    lines: Mapped[list["InventoryIssueLine"]] = relationship(
        back_populates="issue",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class InventoryIssueLine(TrackedBase):
    __tablename__ = "inventory_issue_lines"

    issue_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_issues.id"),
        nullable=False,
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    total_quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    line_total: Mapped[Decimal] = mapped_column(nullable=False)

    issue: Mapped["InventoryIssue"] = relationship(back_populates="lines")
    allocations: Mapped[list["InventoryIssueAllocation"]] = relationship(
        back_populates="line",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class InventoryIssueAllocation(TrackedBase):
    """Snapshot of one lot draw for an issue line."""

    __tablename__ = "inventory_issue_allocations"

    line_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_issue_lines.id"),
        nullable=False,
    )

    inventory_lot_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_lots.id"),
        nullable=False,
    )

    lot_number: Mapped[str] = mapped_column(String(100), nullable=False)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)

    line: Mapped["InventoryIssueLine"] = relationship(back_populates="allocations")
