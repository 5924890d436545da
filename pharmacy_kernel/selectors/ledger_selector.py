"""
Module: pharmacy_kernel.selectors.ledger_selector
Responsibility: Read access to the Stock Ledger -- transaction documents,
    outbound listing, and quantity totals summed from ledger details.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Totals are computed from TransactionDetail rows of COMPLETED
      transactions at query time; nothing is stored.  Only INBOUND adds and
      only OUTBOUND subtracts.
    - Because the ledger is append-only, inbound minus outbound for a
      product over a window equals the net change applied to its lots over
      the same window.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import case, func, select

from pharmacy_kernel.domain.dtos import (
    MovementTotals,
    Page,
    TransactionDocument,
    TransactionLine,
)
from pharmacy_kernel.domain.types import TransactionStatus, TransactionType
from pharmacy_kernel.models.stock_transaction import StockTransaction, TransactionDetail
from pharmacy_kernel.selectors.base import BaseSelector

DEFAULT_PAGE_SIZE = 20


def _to_document(tx: StockTransaction) -> TransactionDocument:
    return TransactionDocument(
        id=tx.id,
        transaction_type=TransactionType(tx.transaction_type),
        status=TransactionStatus(tx.status),
        transaction_date=tx.transaction_date,
        user_id=tx.user_id,
        reference_code=tx.reference_code,
        source_warehouse_id=tx.source_warehouse_id,
        destination_warehouse_id=tx.destination_warehouse_id,
        supplier_id=tx.supplier_id,
        department_id=tx.department_id,
        notes=tx.notes,
        lines=tuple(
            TransactionLine(
                id=d.id,
                product_id=d.product_id,
                inventory_lot_id=d.inventory_lot_id,
                quantity=d.quantity,
                unit_price=d.unit_price,
            )
            for d in tx.details
        ),
    )


class LedgerSelector(BaseSelector[StockTransaction]):
    """Read-only ledger queries."""

    def get_transaction(
        self,
        transaction_id: UUID,
        transaction_type: TransactionType | None = None,
    ) -> TransactionDocument | None:
        """Transaction header with its detail lines, optionally type-checked."""
        stmt = select(StockTransaction).where(StockTransaction.id == transaction_id)
        if transaction_type is not None:
            stmt = stmt.where(StockTransaction.transaction_type == transaction_type)
        tx = self.session.execute(stmt).scalar_one_or_none()
        return _to_document(tx) if tx is not None else None

    def list_transactions(
        self,
        transaction_type: TransactionType,
        *,
        search: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> Page:
        """Newest first; search matches reference_code case-insensitively."""
        page = max(page, 1)
        limit = max(limit, 1)

        conditions = [StockTransaction.transaction_type == transaction_type]
        if search:
            conditions.append(
                func.lower(StockTransaction.reference_code).like(f"%{search.lower()}%")
            )
        if date_from is not None:
            conditions.append(StockTransaction.transaction_date >= date_from)
        if date_to is not None:
            conditions.append(StockTransaction.transaction_date <= date_to)

        total = self.session.execute(
            select(func.count(StockTransaction.id)).where(*conditions)
        ).scalar_one()
        txs = self.session.execute(
            select(StockTransaction)
            .where(*conditions)
            .order_by(StockTransaction.transaction_date.desc(), StockTransaction.id)
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()

        return Page(
            items=tuple(_to_document(tx) for tx in txs),
            page=page,
            limit=limit,
            total=total,
        )

    def list_outbound(self, **kwargs) -> Page:
        return self.list_transactions(TransactionType.OUTBOUND, **kwargs)

    def movement_totals(
        self,
        product_id: UUID,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        warehouse_id: UUID | None = None,
    ) -> MovementTotals:
        """
        Inbound and outbound quantity for a product over [start, end].

        With a warehouse, inbound counts receipts into it and outbound counts
        issues out of it.
        """
        inbound_cond = StockTransaction.transaction_type == TransactionType.INBOUND
        outbound_cond = StockTransaction.transaction_type == TransactionType.OUTBOUND
        if warehouse_id is not None:
            inbound_cond = inbound_cond & (
                StockTransaction.destination_warehouse_id == warehouse_id
            )
            outbound_cond = outbound_cond & (
                StockTransaction.source_warehouse_id == warehouse_id
            )

        stmt = (
            select(
                func.coalesce(
                    func.sum(case((inbound_cond, TransactionDetail.quantity), else_=0)), 0
                ).label("inbound"),
                func.coalesce(
                    func.sum(case((outbound_cond, TransactionDetail.quantity), else_=0)), 0
                ).label("outbound"),
            )
            .select_from(TransactionDetail)
            .join(StockTransaction, TransactionDetail.transaction_id == StockTransaction.id)
            .where(
                TransactionDetail.product_id == product_id,
                StockTransaction.status == TransactionStatus.COMPLETED,
            )
        )
        if start is not None:
            stmt = stmt.where(StockTransaction.transaction_date >= start)
        if end is not None:
            stmt = stmt.where(StockTransaction.transaction_date <= end)

        row = self.session.execute(stmt).one()
        return MovementTotals(
            product_id=product_id,
            inbound=int(row.inbound),
            outbound=int(row.outbound),
        )

    def stock_at(
        self,
        product_id: UUID,
        as_of: datetime,
        warehouse_id: UUID | None = None,
    ) -> int:
        """Historical stock reconstructed from the ledger alone."""
        return self.movement_totals(
            product_id, end=as_of, warehouse_id=warehouse_id
        ).net
