"""
Module: pharmacy_kernel.selectors.lot_selector
Responsibility: Read access to the Lot Store -- allocation candidates,
    available quantity, stock aggregation, expiring lots, and product
    suggestions for building an issue.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Zero-quantity lots are never returned as candidates, never count toward
      nearest expiry, and never appear as expiring.
"""

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select

from pharmacy_kernel.domain.dtos import (
    ExpiringLot,
    LotCandidate,
    ProductSuggestion,
    StockLevel,
)
from pharmacy_kernel.models.inventory_lot import InventoryLot
from pharmacy_kernel.models.product import Product
from pharmacy_kernel.selectors.base import BaseSelector

SUGGESTION_LIMIT = 20


class LotSelector(BaseSelector[InventoryLot]):
    """Read-only queries over inventory lots."""

    def _stocked_lots(self, product_id: UUID, warehouse_id: UUID):
        return select(InventoryLot).where(
            InventoryLot.product_id == product_id,
            InventoryLot.warehouse_id == warehouse_id,
            InventoryLot.quantity > 0,
        )

    def candidates(self, product_id: UUID, warehouse_id: UUID) -> list[LotCandidate]:
        """Lots with stock for this product in this warehouse, in FEFO order."""
        lots = self.session.execute(
            self._stocked_lots(product_id, warehouse_id).execution_options(
                populate_existing=True
            )
        ).scalars().all()
        return sorted(
            (LotCandidate.from_model(lot) for lot in lots),
            key=lambda c: c.fefo_key,
        )

    def available_quantity(self, product_id: UUID, warehouse_id: UUID) -> int:
        total = self.session.execute(
            select(func.coalesce(func.sum(InventoryLot.quantity), 0)).where(
                InventoryLot.product_id == product_id,
                InventoryLot.warehouse_id == warehouse_id,
                InventoryLot.quantity > 0,
            )
        ).scalar_one()
        return int(total)

    def total_quantity(self, product_id: UUID) -> int:
        """Sum of all lot quantities for a product across warehouses."""
        total = self.session.execute(
            select(func.coalesce(func.sum(InventoryLot.quantity), 0)).where(
                InventoryLot.product_id == product_id,
            )
        ).scalar_one()
        return int(total)

    def aggregate_stock(
        self,
        product_id: UUID | None = None,
        warehouse_id: UUID | None = None,
    ) -> list[StockLevel]:
        """
        Per (product, warehouse): total quantity, nearest expiry among
        stocked lots, and stock value (quantity x unit cost).
        """
        stmt = (
            select(
                InventoryLot.product_id,
                InventoryLot.warehouse_id,
                func.sum(InventoryLot.quantity).label("stock_qty"),
                func.min(InventoryLot.expiry_date).label("nearest_expiry"),
                func.sum(InventoryLot.quantity * InventoryLot.unit_cost).label(
                    "stock_value"
                ),
            )
            .where(InventoryLot.quantity > 0)
            .group_by(InventoryLot.product_id, InventoryLot.warehouse_id)
        )
        if product_id is not None:
            stmt = stmt.where(InventoryLot.product_id == product_id)
        if warehouse_id is not None:
            stmt = stmt.where(InventoryLot.warehouse_id == warehouse_id)

        return [
            StockLevel(
                product_id=row.product_id,
                warehouse_id=row.warehouse_id,
                stock_qty=int(row.stock_qty or 0),
                nearest_expiry=row.nearest_expiry,
                stock_value=Decimal(row.stock_value or 0),
            )
            for row in self.session.execute(stmt).all()
        ]

    def expiring_within(
        self,
        days: int,
        as_of: date,
        warehouse_id: UUID | None = None,
    ) -> list[ExpiringLot]:
        """Stocked lots whose expiry falls within ``days`` of ``as_of`` (expired included)."""
        horizon = as_of + timedelta(days=days)
        stmt = (
            select(InventoryLot)
            .where(
                InventoryLot.quantity > 0,
                InventoryLot.expiry_date.is_not(None),
                InventoryLot.expiry_date <= horizon,
            )
            .order_by(InventoryLot.expiry_date)
        )
        if warehouse_id is not None:
            stmt = stmt.where(InventoryLot.warehouse_id == warehouse_id)

        return [
            ExpiringLot(
                lot_id=lot.id,
                product_id=lot.product_id,
                warehouse_id=lot.warehouse_id,
                lot_number=lot.lot_number,
                expiry_date=lot.expiry_date,
                quantity=lot.quantity,
                days_left=(lot.expiry_date - as_of).days,
            )
            for lot in self.session.execute(stmt).scalars().all()
        ]

    def product_suggestions(
        self,
        warehouse_id: UUID,
        search: str | None = None,
        limit: int = SUGGESTION_LIMIT,
    ) -> list[ProductSuggestion]:
        """
        Active products matching ``search`` (name or SKU, case-insensitive),
        each with its available quantity in the warehouse and the expiry and
        unit cost of the lot FEFO would draw first.
        """
        stmt = select(Product).where(Product.is_active.is_(True)).order_by(Product.name)
        if search:
            pattern = f"%{search.lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(Product.name).like(pattern),
                    func.lower(Product.sku).like(pattern),
                )
            )
        products = self.session.execute(stmt.limit(limit)).scalars().all()
        if not products:
            return []

        lots = self.session.execute(
            select(InventoryLot).where(
                InventoryLot.warehouse_id == warehouse_id,
                InventoryLot.quantity > 0,
                InventoryLot.product_id.in_([p.id for p in products]),
            )
        ).scalars().all()
        by_product: dict[UUID, list[InventoryLot]] = defaultdict(list)
        for lot in lots:
            by_product[lot.product_id].append(lot)

        suggestions = []
        for product in products:
            stocked = by_product.get(product.id, [])
            first = min(
                stocked,
                key=lambda lot: LotCandidate.from_model(lot).fefo_key,
                default=None,
            )
            suggestions.append(
                ProductSuggestion(
                    product_id=product.id,
                    sku=product.sku,
                    name=product.name,
                    unit=product.unit,
                    available_qty=sum(lot.quantity for lot in stocked),
                    nearest_expiry=first.expiry_date if first else None,
                    unit_price=first.unit_cost if first else None,
                )
            )
        return suggestions
