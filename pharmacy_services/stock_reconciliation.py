"""
StockReconciliationService -- repairs the denormalized current-stock counter.

Product.current_stock is adjusted at write time by the movement service.
This service recomputes it from lot quantities (the source of truth) and
corrects any product whose counter has drifted, e.g. after a manual data
fix or an import that bypassed the movement service.

Runs as the ``inventory.reconcile_current_stock`` scheduled task.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pharmacy_kernel.domain.clock import Clock, SystemClock
from pharmacy_kernel.domain.types import SYSTEM_ACTOR_ID
from pharmacy_kernel.exceptions import PersistenceError
from pharmacy_kernel.logging_config import get_logger
from pharmacy_kernel.models.inventory_lot import InventoryLot
from pharmacy_kernel.models.product import Product

logger = get_logger("services.stock_reconciliation")


@dataclass(frozen=True)
class StockCorrection:
    product_id: UUID
    sku: str
    recorded: int
    actual: int

    @property
    def difference(self) -> int:
        return self.actual - self.recorded


class StockReconciliationService:
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._auto_commit = auto_commit

    def lot_totals(self) -> dict[UUID, int]:
        rows = self._session.execute(
            select(InventoryLot.product_id, func.sum(InventoryLot.quantity))
            .group_by(InventoryLot.product_id)
        ).all()
        return {product_id: int(total or 0) for product_id, total in rows}

    def reconcile_current_stock(self, actor_id: UUID = SYSTEM_ACTOR_ID) -> list[StockCorrection]:
        """Set every product's current_stock to the sum of its lots.  Returns the corrections made."""
        try:
            totals = self.lot_totals()
            products = self._session.execute(
                select(Product).order_by(Product.sku).execution_options(populate_existing=True)
            ).scalars().all()

            corrections = []
            now = self._clock.now()
            for product in products:
                actual = totals.get(product.id, 0)
                if product.current_stock == actual:
                    continue
                corrections.append(
                    StockCorrection(
                        product_id=product.id,
                        sku=product.sku,
                        recorded=product.current_stock,
                        actual=actual,
                    )
                )
                product.current_stock = actual
                product.updated_at = now
                product.updated_by_id = actor_id

            self._session.flush()
            if self._auto_commit:
                self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            logger.error("stock_reconciliation_failed", exc_info=True)
            raise PersistenceError("reconcile_current_stock", str(exc)) from exc

        for correction in corrections:
            logger.warning(
                "current_stock_corrected",
                extra={
                    "product_id": str(correction.product_id),
                    "sku": correction.sku,
                    "recorded": correction.recorded,
                    "actual": correction.actual,
                },
            )
        logger.info(
            "stock_reconciliation_completed",
            extra={"products_checked": len(products), "corrections": len(corrections)},
        )
        return corrections
