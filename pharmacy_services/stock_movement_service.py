"""
Stock Movement Service (``pharmacy_services.stock_movement_service``).

Responsibility
--------------
The Issue/Receipt Processor.  Orchestrates one stock movement end to end:
validates the request, resolves references, plans lot draws with the FEFO
allocator (outbound) or upserts lots (inbound), mutates the Lot Store,
keeps ``Product.current_stock`` in step, and appends the ledger rows -- all
as one atomic unit.

Architecture
------------
Layer: **Services** -- stateful orchestration.

1. ``LotSelector`` reads allocation candidates and available stock.
2. ``FefoAllocator`` (pure engine) turns candidates into a pick plan.
3. Conditional UPDATEs decrement lots; ``SequenceService`` numbers the
   issue document from a per-day counter.

Invariants
----------
- Each public method owns its transaction boundary: commit on success,
  rollback on any failure (``auto_commit=False`` leaves the boundary to
  the caller).
- Lot quantity never goes negative.  Every decrement is
  ``UPDATE ... SET quantity = quantity - n WHERE id = ? AND quantity >= n``;
  a zero-row result means a concurrent movement drew the lot down.  The
  FEFO path then re-reads fresh lot state and re-plans, up to
  ``max_allocation_attempts``.
- Receipts match lots on (product, warehouse, lot_number, expiry_date) and
  increment in place; a missing expiry matches only a lot with no expiry.
- Issue sufficiency is pre-checked for every line before any mutation and
  every shortage is reported together.

Failure Modes
-------------
- ``ValidationError``           -- malformed request, before any mutation.
- ``ReferenceNotFoundError``    -- unknown product/warehouse/supplier/lot.
- ``InsufficientStockError``    -- aggregated shortages (pre-check), or a
  per-product shortage found while allocating.
- ``ConcurrencyConflictError``  -- re-planning kept losing races.
- ``PersistenceError``          -- storage failure; the unit is rolled back.

Usage::

    service = StockMovementService(session, clock=clock)
    result = service.issue(
        IssueRequest(
            warehouse_id=wh.id,
            department_name="Emergency",
            lines=(IssueLine(product_id=p.id, quantity=120, unit_price=Decimal("2.50")),),
        ),
        actor_id=user_id,
    )
"""

from __future__ import annotations

import secrets
from collections import defaultdict
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from pharmacy_config import InventorySettings
from pharmacy_engines.allocation import FefoAllocator
from pharmacy_kernel.domain.clock import Clock, SystemClock
from pharmacy_kernel.domain.dtos import (
    IssueAllocation,
    IssueLine,
    IssueRequest,
    IssueResult,
    LotPick,
    ReceiptLine,
    ReceiptRequest,
    ReceiptResult,
    ReceivedLot,
)
from pharmacy_kernel.domain.routing import validate_routing
from pharmacy_kernel.domain.types import TransactionStatus, TransactionType
from pharmacy_kernel.exceptions import (
    ConcurrencyConflictError,
    InsufficientStockError,
    LotNotFoundError,
    PersistenceError,
    PharmacyKernelError,
    ReferenceNotFoundError,
    ValidationError,
)
from pharmacy_kernel.logging_config import LogContext, get_logger
from pharmacy_kernel.models.inventory_issue import (
    InventoryIssue,
    InventoryIssueAllocation,
    InventoryIssueLine,
)
from pharmacy_kernel.models.inventory_lot import InventoryLot
from pharmacy_kernel.models.product import Product
from pharmacy_kernel.models.reference import Department, Supplier, Warehouse
from pharmacy_kernel.models.stock_transaction import StockTransaction, TransactionDetail
from pharmacy_kernel.selectors.lot_selector import LotSelector
from pharmacy_kernel.services.sequence_service import SequenceService

logger = get_logger("services.stock_movement")


# =============================================================================
# Request validation (pure, before any I/O)
# =============================================================================


def _check_quantity(errors: list[dict], field: str, value: Any) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        errors.append({"field": field, "message": "must be a positive integer"})


def _check_price(errors: list[dict], field: str, value: Any) -> None:
    if not isinstance(value, Decimal) or not value.is_finite() or value < 0:
        errors.append({"field": field, "message": "must be a non-negative Decimal"})


def validate_receipt_request(request: ReceiptRequest) -> None:
    """Raise ValidationError listing every malformed field."""
    errors: list[dict] = []
    if request.warehouse_id is None:
        errors.append({"field": "warehouse_id", "message": "is required"})
    if request.supplier_id is None:
        errors.append({"field": "supplier_id", "message": "is required"})
    if not request.lines:
        errors.append({"field": "lines", "message": "at least one line is required"})
    for i, line in enumerate(request.lines):
        if line.product_id is None:
            errors.append({"field": f"lines[{i}].product_id", "message": "is required"})
        _check_quantity(errors, f"lines[{i}].quantity", line.quantity)
        _check_price(errors, f"lines[{i}].unit_price", line.unit_price)
        if line.lot_number is not None and not line.lot_number.strip():
            errors.append(
                {"field": f"lines[{i}].lot_number", "message": "must not be blank"}
            )
    if errors:
        raise ValidationError(errors)


def validate_issue_request(request: IssueRequest) -> None:
    """Raise ValidationError listing every malformed field."""
    errors: list[dict] = []
    if request.warehouse_id is None:
        errors.append({"field": "warehouse_id", "message": "is required"})
    if not request.department_name or not request.department_name.strip():
        errors.append({"field": "department_name", "message": "is required"})
    if not request.lines:
        errors.append({"field": "lines", "message": "at least one line is required"})
    for i, line in enumerate(request.lines):
        if line.product_id is None:
            errors.append({"field": f"lines[{i}].product_id", "message": "is required"})
        _check_quantity(errors, f"lines[{i}].quantity", line.quantity)
        _check_price(errors, f"lines[{i}].unit_price", line.unit_price)
        if not line.lot_allocations:
            continue
        for j, alloc in enumerate(line.lot_allocations):
            if alloc.lot_id is None:
                errors.append(
                    {"field": f"lines[{i}].lot_allocations[{j}].lot_id", "message": "is required"}
                )
            _check_quantity(errors, f"lines[{i}].lot_allocations[{j}].quantity", alloc.quantity)
        allocated = sum(
            a.quantity for a in line.lot_allocations
            if isinstance(a.quantity, int) and a.quantity > 0
        )
        if isinstance(line.quantity, int) and allocated != line.quantity:
            errors.append(
                {
                    "field": f"lines[{i}].lot_allocations",
                    "message": f"allocations total {allocated}, line quantity is {line.quantity}",
                }
            )
    if errors:
        raise ValidationError(errors)


def department_code(name: str) -> str:
    """``Intensive care`` -> ``INTENSIVE-CARE``; room is left for a ``-N`` suffix."""
    return "-".join(name.upper().split())[:44]


def _shortage(product: Product, requested: int, available: int, lot_number: str | None = None) -> dict:
    subject = product.name if lot_number is None else f"{product.name} (lot {lot_number})"
    return {
        "product_id": str(product.id),
        "product_name": product.name,
        "lot_number": lot_number,
        "requested": requested,
        "available": available,
        "shortage": requested - available,
        "message": f"{subject}: requested {requested}, available {available}",
    }


class _LotRaceLost(Exception):
    """A conditional decrement matched no row; the plan is stale."""

    def __init__(self, lot_id: UUID):
        self.lot_id = lot_id
        super().__init__(str(lot_id))


# =============================================================================
# Service
# =============================================================================


class StockMovementService:
    """
    Issue/Receipt Processor.

    Transaction boundary: with ``auto_commit=True`` (default) each public
    method commits on success and rolls back on failure.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: InventorySettings | None = None,
        allocator: FefoAllocator | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._settings = settings or InventorySettings()
        self._clock = clock or SystemClock(self._settings.scheduler.timezone)
        self._allocator = allocator or FefoAllocator()
        self._auto_commit = auto_commit
        self._lots = LotSelector(session)
        self._sequences = SequenceService(session)

    # ------------------------------------------------------------------
    # Transaction boundary
    # ------------------------------------------------------------------

    @contextmanager
    def _atomic(self, operation: str) -> Iterator[None]:
        try:
            yield
            if self._auto_commit:
                self._session.commit()
        except PharmacyKernelError:
            self._session.rollback()
            raise
        except SQLAlchemyError as exc:
            self._session.rollback()
            logger.error(
                "movement_persistence_failed",
                extra={"operation": operation},
                exc_info=True,
            )
            raise PersistenceError(operation, str(exc)) from exc
        except Exception:
            self._session.rollback()
            raise

    # ------------------------------------------------------------------
    # Reference lookups
    # ------------------------------------------------------------------

    def _require(self, model, entity_id: UUID, entity_type: str):
        entity = self._session.get(model, entity_id)
        if entity is None:
            raise ReferenceNotFoundError(entity_type, str(entity_id))
        return entity

    def _require_products(self, product_ids) -> dict[UUID, Product]:
        products = {}
        for product_id in product_ids:
            if product_id not in products:
                products[product_id] = self._require(Product, product_id, "Product")
        return products

    def _find_department(self, name: str) -> Department | None:
        return self._session.execute(
            select(Department)
            .where(func.lower(Department.name) == name.lower())
            .order_by(Department.created_at, Department.id)
            .limit(1)
        ).scalar_one_or_none()

    def _free_department_code(self, name: str) -> str:
        base = department_code(name)
        taken = set(
            self._session.execute(
                select(Department.code).where(Department.code.like(f"{base}%"))
            ).scalars()
        )
        code, n = base, 2
        while code in taken:
            code = f"{base}-{n}"
            n += 1
        return code

    def _resolve_department(self, name: str, actor_id: UUID) -> Department:
        """
        Department matching ``name`` case-insensitively with whitespace
        collapsed, created on first use.
        """
        name = " ".join(name.split())
        department = self._find_department(name)
        if department is not None:
            return department

        savepoint = self._session.begin_nested()
        try:
            department = Department(
                code=self._free_department_code(name),
                name=name,
                created_at=self._clock.now(),
                created_by_id=actor_id,
            )
            self._session.add(department)
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            # A concurrent issue created the department first
            savepoint.rollback()
            department = self._find_department(name)
            if department is None:
                raise
            return department

        logger.info(
            "department_created",
            extra={
                "department_id": str(department.id),
                "department_name": name,
                "department_code": department.code,
            },
        )
        return department

    # ------------------------------------------------------------------
    # Document numbering
    # ------------------------------------------------------------------

    def generate_lot_number(self) -> str:
        """``LOT-YYYYMMDD-hhmmss-NNNN`` from the clock plus a random suffix."""
        stamp = self._clock.local_now().strftime("%Y%m%d-%H%M%S")
        suffix = 1000 + secrets.randbelow(9000)
        return f"{self._settings.documents.lot_number_prefix}-{stamp}-{suffix}"

    def next_issue_code(self, issue_day: date) -> str:
        """``PX-YYYYMMDD-NNN`` from the per-day counter."""
        docs = self._settings.documents
        seq = self._sequences.next_value(
            SequenceService.daily_name(SequenceService.INVENTORY_ISSUE, issue_day)
        )
        return f"{docs.issue_code_prefix}-{issue_day.strftime('%Y%m%d')}-{seq:0{docs.issue_sequence_padding}d}"

    # ------------------------------------------------------------------
    # Lot store mutations
    # ------------------------------------------------------------------

    def _find_lot(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        lot_number: str,
        expiry_date: date | None,
    ) -> InventoryLot | None:
        stmt = select(InventoryLot).where(
            InventoryLot.product_id == product_id,
            InventoryLot.warehouse_id == warehouse_id,
            InventoryLot.lot_number == lot_number,
        )
        if expiry_date is None:
            stmt = stmt.where(InventoryLot.expiry_date.is_(None))
        else:
            stmt = stmt.where(InventoryLot.expiry_date == expiry_date)
        return self._session.execute(
            stmt.with_for_update(of=InventoryLot).execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _increment_lot(self, lot: InventoryLot, qty: int, actor_id: UUID) -> None:
        self._session.execute(
            update(InventoryLot)
            .where(InventoryLot.id == lot.id)
            .values(
                quantity=InventoryLot.quantity + qty,
                updated_at=self._clock.now(),
                updated_by_id=actor_id,
            )
            .execution_options(synchronize_session=False)
        )
        self._session.expire(lot, ["quantity", "updated_at", "updated_by_id"])

    def _decrement_lot(self, lot_id: UUID, qty: int, actor_id: UUID) -> bool:
        """Conditional decrement.  False when the lot no longer holds ``qty``."""
        result = self._session.execute(
            update(InventoryLot)
            .where(InventoryLot.id == lot_id, InventoryLot.quantity >= qty)
            .values(
                quantity=InventoryLot.quantity - qty,
                updated_at=self._clock.now(),
                updated_by_id=actor_id,
            )
            .execution_options(synchronize_session=False)
        )
        lot = self._session.get(InventoryLot, lot_id)
        if lot is not None:
            self._session.expire(lot, ["quantity", "updated_at", "updated_by_id"])
        return result.rowcount == 1

    def _adjust_current_stock(self, product_id: UUID, delta: int, actor_id: UUID) -> None:
        self._session.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(
                current_stock=Product.current_stock + delta,
                updated_at=self._clock.now(),
                updated_by_id=actor_id,
            )
            .execution_options(synchronize_session=False)
        )
        product = self._session.get(Product, product_id)
        if product is not None:
            self._session.expire(product, ["current_stock", "updated_at", "updated_by_id"])

    def _upsert_lot(
        self,
        line: ReceiptLine,
        warehouse_id: UUID,
        actor_id: UUID,
    ) -> tuple[InventoryLot, bool]:
        """Increment the matching lot in place, or create it.  Returns (lot, created)."""
        lot_number = line.lot_number.strip() if line.lot_number else self.generate_lot_number()

        lot = self._find_lot(line.product_id, warehouse_id, lot_number, line.expiry_date)
        if lot is not None:
            self._increment_lot(lot, line.quantity, actor_id)
            return lot, False

        savepoint = self._session.begin_nested()
        try:
            lot = InventoryLot(
                product_id=line.product_id,
                warehouse_id=warehouse_id,
                lot_number=lot_number,
                expiry_date=line.expiry_date,
                quantity=line.quantity,
                unit_cost=line.unit_price,
                created_at=self._clock.now(),
                created_by_id=actor_id,
            )
            self._session.add(lot)
            self._session.flush()
            savepoint.commit()
            return lot, True
        except IntegrityError:
            # A concurrent receipt created the same identity first
            savepoint.rollback()
            lot = self._find_lot(line.product_id, warehouse_id, lot_number, line.expiry_date)
            if lot is None:
                raise
            self._increment_lot(lot, line.quantity, actor_id)
            return lot, False

    # ------------------------------------------------------------------
    # Receipt
    # ------------------------------------------------------------------

    def receive(self, request: ReceiptRequest, actor_id: UUID) -> ReceiptResult:
        """
        Record an inbound receipt from a supplier into a warehouse.

        Postconditions:
            - One INBOUND StockTransaction with one detail per line.
            - Each line's lot is incremented in place or created.
            - Product.current_stock is increased by each line's quantity.
        """
        validate_receipt_request(request)

        with LogContext.bind(actor_id=str(actor_id)):
            self._require(Warehouse, request.warehouse_id, "Warehouse")
            self._require(Supplier, request.supplier_id, "Supplier")
            self._require_products(line.product_id for line in request.lines)
            validate_routing(
                TransactionType.INBOUND,
                destination_warehouse_id=request.warehouse_id,
                supplier_id=request.supplier_id,
            )

            with self._atomic("receive"):
                now = self._clock.now()
                tx = StockTransaction(
                    id=uuid4(),
                    transaction_type=TransactionType.INBOUND,
                    status=TransactionStatus.COMPLETED,
                    transaction_date=request.transaction_date or now,
                    user_id=actor_id,
                    destination_warehouse_id=request.warehouse_id,
                    supplier_id=request.supplier_id,
                    reference_code=request.reference_code,
                    notes=request.notes,
                    created_at=now,
                    created_by_id=actor_id,
                )
                self._session.add(tx)
                self._session.flush()

                received: list[ReceivedLot] = []
                total = Decimal("0")
                for line in request.lines:
                    lot, created = self._upsert_lot(line, request.warehouse_id, actor_id)
                    self._session.add(
                        TransactionDetail(
                            transaction_id=tx.id,
                            product_id=line.product_id,
                            inventory_lot_id=lot.id,
                            quantity=line.quantity,
                            unit_price=line.unit_price,
                            created_at=now,
                            created_by_id=actor_id,
                        )
                    )
                    self._adjust_current_stock(line.product_id, line.quantity, actor_id)
                    self._session.flush()
                    total += line.unit_price * line.quantity
                    received.append(
                        ReceivedLot(
                            lot_id=lot.id,
                            product_id=line.product_id,
                            lot_number=lot.lot_number,
                            expiry_date=lot.expiry_date,
                            quantity_received=line.quantity,
                            quantity_after=lot.quantity,
                            created=created,
                        )
                    )

            logger.info(
                "receipt_recorded",
                extra={
                    "transaction_id": str(tx.id),
                    "warehouse_id": str(request.warehouse_id),
                    "line_count": len(request.lines),
                    "lots_created": sum(1 for r in received if r.created),
                    "total_amount": str(total),
                },
            )
            return ReceiptResult(transaction_id=tx.id, lots=tuple(received), total_amount=total)

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def _load_manual_lots(self, request: IssueRequest) -> dict[UUID, InventoryLot]:
        lots: dict[UUID, InventoryLot] = {}
        for line in request.lines:
            for alloc in line.lot_allocations:
                lot = self._session.get(InventoryLot, alloc.lot_id)
                if (
                    lot is None
                    or lot.product_id != line.product_id
                    or lot.warehouse_id != request.warehouse_id
                ):
                    raise LotNotFoundError(str(alloc.lot_id))
                lots[lot.id] = lot
        return lots

    def check_stock(
        self,
        request: IssueRequest,
        products: dict[UUID, Product],
        manual_lots: dict[UUID, InventoryLot],
    ) -> list[dict]:
        """
        Every shortage in the request, not just the first.

        Manual allocations are summed per lot against that lot's quantity.
        A product with FEFO lines is checked against warehouse stock for its
        FEFO demand plus its manual demand, since named lots are drawn first
        and FEFO only sees what they leave.
        """
        fefo_requested: dict[UUID, int] = defaultdict(int)
        manual_requested: dict[UUID, int] = defaultdict(int)
        lot_requested: dict[UUID, int] = defaultdict(int)
        for line in request.lines:
            if line.lot_allocations:
                for alloc in line.lot_allocations:
                    lot_requested[alloc.lot_id] += alloc.quantity
                manual_requested[line.product_id] += line.quantity
            else:
                fefo_requested[line.product_id] += line.quantity

        shortages = []
        for product_id, fefo_qty in fefo_requested.items():
            requested = fefo_qty + manual_requested[product_id]
            available = self._lots.available_quantity(product_id, request.warehouse_id)
            if available < requested:
                shortages.append(_shortage(products[product_id], requested, available))
        for lot_id, requested in lot_requested.items():
            lot = manual_lots[lot_id]
            if lot.quantity < requested:
                shortages.append(
                    _shortage(products[lot.product_id], requested, lot.quantity, lot.lot_number)
                )
        return shortages

    def _draw_manual(self, line: IssueLine, product: Product, actor_id: UUID) -> list[LotPick]:
        picks = []
        for alloc in line.lot_allocations:
            if not self._decrement_lot(alloc.lot_id, alloc.quantity, actor_id):
                lot = self._session.get(InventoryLot, alloc.lot_id)
                raise InsufficientStockError(
                    [_shortage(product, alloc.quantity, lot.quantity, lot.lot_number)]
                )
            picks.append(LotPick(lot_id=alloc.lot_id, pick_qty=alloc.quantity))
        return picks

    def _draw_fefo(
        self,
        line: IssueLine,
        product: Product,
        warehouse_id: UUID,
        actor_id: UUID,
    ) -> list[LotPick]:
        """
        Plan from fresh lot state and apply the plan with conditional
        decrements inside a savepoint.  A lost race rolls the savepoint back
        and re-plans.
        """
        attempts = self._settings.allocation.max_allocation_attempts
        contested: list[str] = []
        for attempt in range(1, attempts + 1):
            candidates = self._lots.candidates(product.id, warehouse_id)
            plan = self._allocator.suggest(candidates=candidates, required_qty=line.quantity)
            if not plan.is_complete:
                raise InsufficientStockError(
                    [_shortage(product, line.quantity, plan.allocated_qty)]
                )

            savepoint = self._session.begin_nested()
            try:
                for pick in plan.picks:
                    if not self._decrement_lot(pick.lot_id, pick.pick_qty, actor_id):
                        raise _LotRaceLost(pick.lot_id)
                savepoint.commit()
                return list(plan.picks)
            except _LotRaceLost as lost:
                savepoint.rollback()
                contested.append(str(lost.lot_id))
                logger.warning(
                    "allocation_race_retry",
                    extra={
                        "product_id": str(product.id),
                        "lot_id": str(lost.lot_id),
                        "attempt": attempt,
                        "max_attempts": attempts,
                    },
                )

        raise ConcurrencyConflictError(str(product.id), contested, attempts)

    def issue(self, request: IssueRequest, actor_id: UUID) -> IssueResult:
        """
        Issue stock from a warehouse to a department.

        Postconditions:
            - One OUTBOUND StockTransaction with one detail per (line, lot) pick.
            - One InventoryIssue numbered ``PX-YYYYMMDD-NNN``.
            - Lot quantities and Product.current_stock reduced.
            - On any failure, none of the above is persisted.
        """
        validate_issue_request(request)

        with LogContext.bind(actor_id=str(actor_id)):
            self._require(Warehouse, request.warehouse_id, "Warehouse")
            products = self._require_products(line.product_id for line in request.lines)
            manual_lots = self._load_manual_lots(request)

            shortages = self.check_stock(request, products, manual_lots)
            if shortages:
                logger.info(
                    "issue_rejected_insufficient_stock",
                    extra={
                        "warehouse_id": str(request.warehouse_id),
                        "shortage_count": len(shortages),
                    },
                )
                raise InsufficientStockError(shortages)

            with self._atomic("issue"):
                now = self._clock.now()
                issue_date = request.issue_date or now
                department = self._resolve_department(request.department_name, actor_id)
                validate_routing(
                    TransactionType.OUTBOUND,
                    source_warehouse_id=request.warehouse_id,
                    department_id=department.id,
                )
                # Numbered by the day the document is created, even when backdated
                issue_code = self.next_issue_code(self._clock.today())
                LogContext.set(document_code=issue_code)

                tx = StockTransaction(
                    id=uuid4(),
                    transaction_type=TransactionType.OUTBOUND,
                    status=TransactionStatus.COMPLETED,
                    transaction_date=issue_date,
                    user_id=actor_id,
                    source_warehouse_id=request.warehouse_id,
                    department_id=department.id,
                    reference_code=issue_code,
                    notes=request.notes,
                    created_at=now,
                    created_by_id=actor_id,
                )
                issue = InventoryIssue(
                    id=uuid4(),
                    issue_code=issue_code,
                    warehouse_id=request.warehouse_id,
                    department_id=department.id,
                    transaction_id=tx.id,
                    issue_date=issue_date,
                    total_amount=Decimal("0"),
                    notes=request.notes,
                    created_at=now,
                    created_by_id=actor_id,
                )
                self._session.add(tx)
                self._session.flush()

                # Named lots first, so a FEFO plan never takes stock a manual line relies on
                line_picks: dict[int, list[LotPick]] = {}
                for i, line in enumerate(request.lines):
                    if line.lot_allocations:
                        line_picks[i] = self._draw_manual(line, products[line.product_id], actor_id)
                for i, line in enumerate(request.lines):
                    if not line.lot_allocations:
                        line_picks[i] = self._draw_fefo(
                            line, products[line.product_id], request.warehouse_id, actor_id
                        )

                allocations: list[IssueAllocation] = []
                total = Decimal("0")
                issue_lines = []
                for i, line in enumerate(request.lines):
                    picks = line_picks[i]
                    line_total = line.unit_price * line.quantity
                    issue_line = InventoryIssueLine(
                        product_id=line.product_id,
                        total_quantity=line.quantity,
                        unit_price=line.unit_price,
                        line_total=line_total,
                        created_at=now,
                        created_by_id=actor_id,
                    )
                    for pick in picks:
                        lot = self._session.get(InventoryLot, pick.lot_id)
                        self._session.add(
                            TransactionDetail(
                                transaction_id=tx.id,
                                product_id=line.product_id,
                                inventory_lot_id=pick.lot_id,
                                quantity=pick.pick_qty,
                                unit_price=line.unit_price,
                                created_at=now,
                                created_by_id=actor_id,
                            )
                        )
                        issue_line.allocations.append(
                            InventoryIssueAllocation(
                                inventory_lot_id=pick.lot_id,
                                lot_number=lot.lot_number,
                                expiry_date=lot.expiry_date,
                                quantity=pick.pick_qty,
                                unit_cost=lot.unit_cost,
                                created_at=now,
                                created_by_id=actor_id,
                            )
                        )
                        allocations.append(
                            IssueAllocation(
                                product_id=line.product_id,
                                lot_id=pick.lot_id,
                                lot_number=lot.lot_number,
                                expiry_date=lot.expiry_date,
                                quantity=pick.pick_qty,
                                unit_price=line.unit_price,
                                line_total=line.unit_price * pick.pick_qty,
                            )
                        )
                    issue_lines.append(issue_line)
                    self._adjust_current_stock(line.product_id, -line.quantity, actor_id)
                    total += line_total

                issue.total_amount = total
                issue.lines = issue_lines
                self._session.add(issue)
                self._session.flush()

            logger.info(
                "issue_created",
                extra={
                    "issue_id": str(issue.id),
                    "issue_code": issue_code,
                    "transaction_id": str(tx.id),
                    "department": department.name,
                    "line_count": len(request.lines),
                    "lot_count": len(allocations),
                    "total_amount": str(total),
                },
            )
            return IssueResult(
                issue_id=issue.id,
                issue_code=issue_code,
                transaction_id=tx.id,
                department_id=department.id,
                allocations=tuple(allocations),
                total_amount=total,
            )
