"""
Pytest fixtures for the pharmacy inventory test suite.

Provides:
- A fresh in-memory SQLite database per test (StaticPool, real commits)
- Immutability listeners registered for the whole session
- A deterministic clock with naive datetimes (SQLite drops tzinfo)
- Factory fixtures for products, warehouses, suppliers and lots
- ``captured_logs`` for asserting on structured log output
"""

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from pharmacy_config import InventorySettings
from pharmacy_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from pharmacy_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from pharmacy_kernel.domain.clock import DeterministicClock
from pharmacy_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from pharmacy_kernel.models.inventory_lot import InventoryLot
from pharmacy_kernel.models.product import Product
from pharmacy_kernel.models.reference import Supplier, Warehouse
from pharmacy_services.inventory_scanner import InventoryScanner
from pharmacy_services.stock_movement_service import StockMovementService

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

# 2024-06-01 08:00, a Saturday
TEST_NOW = datetime(2024, 6, 1, 8, 0, 0)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture pharmacy_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, movement_service):
            movement_service.issue(...)
            logs = captured_logs()
            assert any(r["message"] == "issue_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("pharmacy_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _immutability_listeners():
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()


@pytest.fixture
def engine():
    """A fresh in-memory database per test; StaticPool shares one connection."""
    eng = init_engine_from_url("sqlite:///:memory:")
    create_tables()
    yield eng
    reset_engine()


@pytest.fixture
def session_factory(engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


# =============================================================================
# Core fixtures
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock():
    """Deterministic clock at a fixed naive datetime."""
    return DeterministicClock(TEST_NOW)


@pytest.fixture
def settings() -> InventorySettings:
    return InventorySettings()


@pytest.fixture
def movement_service(session, deterministic_clock, settings) -> StockMovementService:
    return StockMovementService(session, clock=deterministic_clock, settings=settings)


@pytest.fixture
def scanner(session, deterministic_clock, settings) -> InventoryScanner:
    return InventoryScanner(session, clock=deterministic_clock, settings=settings)


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def create_warehouse(session, test_actor_id, deterministic_clock):
    def _create(code: str = "WH-MAIN", name: str = "Main Warehouse") -> Warehouse:
        warehouse = Warehouse(
            code=code,
            name=name,
            created_at=deterministic_clock.now(),
            created_by_id=test_actor_id,
        )
        session.add(warehouse)
        session.commit()
        return warehouse

    return _create


@pytest.fixture
def create_supplier(session, test_actor_id, deterministic_clock):
    def _create(code: str = "SUP-01", name: str = "Pharma Supply Co") -> Supplier:
        supplier = Supplier(
            code=code,
            name=name,
            created_at=deterministic_clock.now(),
            created_by_id=test_actor_id,
        )
        session.add(supplier)
        session.commit()
        return supplier

    return _create


@pytest.fixture
def create_product(session, test_actor_id, deterministic_clock):
    counter = {"n": 0}

    def _create(
        name: str | None = None,
        sku: str | None = None,
        minimum_stock: int = 10,
        current_stock: int = 0,
        unit: str = "box",
        is_active: bool = True,
    ) -> Product:
        counter["n"] += 1
        product = Product(
            sku=sku or f"SKU-{counter['n']:04d}",
            name=name or f"Product {counter['n']}",
            unit=unit,
            minimum_stock=minimum_stock,
            current_stock=current_stock,
            is_active=is_active,
            created_at=deterministic_clock.now(),
            created_by_id=test_actor_id,
        )
        session.add(product)
        session.commit()
        return product

    return _create


@pytest.fixture
def create_lot(session, test_actor_id, deterministic_clock):
    """
    Insert a lot directly and keep Product.current_stock in step.

    Each lot gets a created_at one second after the previous one so
    creation order is deterministic.
    """

    def _create(
        product: Product,
        warehouse: Warehouse,
        quantity: int,
        expiry_date: date | None = None,
        lot_number: str | None = None,
        unit_cost: Decimal = Decimal("1.00"),
    ) -> InventoryLot:
        lot = InventoryLot(
            product_id=product.id,
            warehouse_id=warehouse.id,
            lot_number=lot_number or f"L-{uuid4().hex[:8].upper()}",
            expiry_date=expiry_date,
            quantity=quantity,
            unit_cost=unit_cost,
            created_at=deterministic_clock.tick(),
            created_by_id=test_actor_id,
        )
        session.add(lot)
        product.current_stock = product.current_stock + quantity
        session.commit()
        return lot

    return _create


@pytest.fixture
def warehouse(create_warehouse) -> Warehouse:
    return create_warehouse()


@pytest.fixture
def supplier(create_supplier) -> Supplier:
    return create_supplier()
