"""
Alert Engine sweep: stock-level and expiry alerts, dedup across passes,
auto-resolution and per-item bulkhead isolation.
"""

from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from pharmacy_config import InventorySettings
from pharmacy_kernel.domain.dtos import IssueLine, IssueRequest
from pharmacy_kernel.domain.types import AlertSeverity, AlertStatus, AlertType, SYSTEM_ACTOR_ID
from pharmacy_kernel.models.alert import Alert
from pharmacy_kernel.models.inventory_lot import InventoryLot
from pharmacy_kernel.models.product import Product
from pharmacy_services.inventory_scanner import InventoryScanner

TODAY = date(2024, 6, 1)


def all_alerts(session):
    return session.execute(select(Alert).order_by(Alert.created_at)).scalars().all()


def active_alerts(session, alert_type=None):
    stmt = select(Alert).where(Alert.status == AlertStatus.ACTIVE)
    if alert_type is not None:
        stmt = stmt.where(Alert.alert_type == alert_type)
    return session.execute(stmt).scalars().all()


class TestStockLevelScan:

    def test_out_of_stock_product_raises_one_critical_alert(self, session, scanner, create_product):
        product = create_product(name="Insulin Glargine", sku="INS-100", current_stock=0)

        result = scanner.scan_stock_levels()

        [alert] = all_alerts(session)
        assert alert.alert_type == AlertType.OUT_OF_STOCK
        assert alert.severity == AlertSeverity.CRITICAL
        assert alert.status == AlertStatus.ACTIVE
        assert alert.product_id == product.id
        assert alert.inventory_lot_id is None
        assert alert.message == "Insulin Glargine (SKU: INS-100) is out of stock"
        assert result.out_of_stock == 1
        assert result.total_alerts == 1

    @pytest.mark.parametrize(
        "current, severity",
        [(2, AlertSeverity.CRITICAL), (5, AlertSeverity.HIGH), (7, AlertSeverity.MEDIUM), (9, AlertSeverity.LOW)],
    )
    def test_low_stock_severity_follows_ratio(self, session, scanner, create_product, current, severity):
        create_product(minimum_stock=10, current_stock=current)

        scanner.scan_stock_levels()

        [alert] = all_alerts(session)
        assert alert.alert_type == AlertType.LOW_STOCK
        assert alert.severity == severity
        assert alert.current_stock == current
        assert alert.minimum_stock == 10

    def test_low_stock_message_shows_counts(self, session, scanner, create_product):
        create_product(name="Aspirin 81mg", sku="ASP-81", minimum_stock=40, current_stock=12, unit="strip")

        scanner.scan_stock_levels()

        assert all_alerts(session)[0].message == "Aspirin 81mg (SKU: ASP-81) is low on stock: 12/40 strip"

    def test_stock_at_minimum_raises_nothing(self, session, scanner, create_product):
        create_product(minimum_stock=10, current_stock=10)

        result = scanner.scan_stock_levels()

        assert all_alerts(session) == []
        assert result.total_alerts == 0

    def test_inactive_products_skipped(self, session, scanner, create_product):
        create_product(current_stock=0, is_active=False)

        scanner.scan_stock_levels()

        assert all_alerts(session) == []

    def test_alerts_attributed_to_system_actor(self, session, scanner, create_product):
        create_product(current_stock=0)

        scanner.scan_stock_levels()

        assert all_alerts(session)[0].created_by_id == SYSTEM_ACTOR_ID


class TestDedup:

    def test_repeated_scans_keep_one_active_alert(self, session, scanner, create_product):
        create_product(current_stock=0)

        first = scanner.scan_stock_levels()
        second = scanner.scan_stock_levels()

        assert len(all_alerts(session)) == 1
        assert first.total_alerts == second.total_alerts == 1

    def test_refresh_updates_snapshot_in_place(self, session, scanner, create_product):
        product = create_product(minimum_stock=10, current_stock=9)
        scanner.scan_stock_levels()

        product.current_stock = 2
        session.commit()
        scanner.scan_stock_levels()

        [alert] = all_alerts(session)
        assert alert.severity == AlertSeverity.CRITICAL
        assert alert.current_stock == 2
        assert "2/10" in alert.message

    def test_acknowledged_alert_does_not_block_a_new_one(self, session, scanner, create_product):
        create_product(current_stock=0)
        scanner.scan_stock_levels()
        acknowledged = all_alerts(session)[0]
        acknowledged.status = AlertStatus.ACKNOWLEDGED
        session.commit()

        scanner.scan_stock_levels()

        assert len(all_alerts(session)) == 2
        assert len(active_alerts(session)) == 1


class TestExpiryScan:

    @pytest.fixture
    def product(self, create_product):
        return create_product(name="Ceftriaxone 1g", sku="CEF-1G", minimum_stock=0)

    @pytest.mark.parametrize(
        "offset_days, alert_type, severity",
        [
            (-2, AlertType.EXPIRED, AlertSeverity.CRITICAL),
            (0, AlertType.EXPIRING_SOON, AlertSeverity.HIGH),
            (7, AlertType.EXPIRING_SOON, AlertSeverity.HIGH),
            (8, AlertType.EXPIRING_SOON, AlertSeverity.MEDIUM),
            (15, AlertType.EXPIRING_SOON, AlertSeverity.MEDIUM),
            (16, AlertType.EXPIRING_SOON, AlertSeverity.LOW),
            (30, AlertType.EXPIRING_SOON, AlertSeverity.LOW),
        ],
    )
    def test_expiry_band(self, session, scanner, product, warehouse, create_lot, offset_days, alert_type, severity):
        lot = create_lot(product, warehouse, 10, TODAY + timedelta(days=offset_days))

        scanner.scan_expiry_dates()

        [alert] = all_alerts(session)
        assert alert.alert_type == alert_type
        assert alert.severity == severity
        assert alert.inventory_lot_id == lot.id
        assert alert.warehouse_id == warehouse.id
        assert alert.days_until_expiry == offset_days
        assert alert.current_stock == 10

    def test_beyond_horizon_and_undated_lots_ignored(self, session, scanner, product, warehouse, create_lot):
        create_lot(product, warehouse, 10, TODAY + timedelta(days=31))
        create_lot(product, warehouse, 10, None)

        result = scanner.scan_expiry_dates()

        assert all_alerts(session) == []
        assert result.total_alerts == 0

    def test_depleted_lot_ignored(self, session, scanner, product, warehouse, create_lot):
        create_lot(product, warehouse, 0, TODAY + timedelta(days=3))

        scanner.scan_expiry_dates()

        assert all_alerts(session) == []

    def test_messages(self, session, scanner, product, warehouse, create_lot):
        create_lot(product, warehouse, 5, TODAY - timedelta(days=4), lot_number="OLD")
        create_lot(product, warehouse, 5, TODAY + timedelta(days=12), lot_number="NEW")

        result = scanner.scan_expiry_dates()

        messages = sorted(a.message for a in all_alerts(session))
        assert messages == [
            "Lot NEW of Ceftriaxone 1g expires in 12 days",
            "Lot OLD of Ceftriaxone 1g expired 4 days ago",
        ]
        assert (result.expired, result.expiring_soon) == (1, 1)

    def test_each_lot_gets_its_own_alert(self, session, scanner, product, warehouse, create_lot):
        create_lot(product, warehouse, 5, TODAY + timedelta(days=3))
        create_lot(product, warehouse, 5, TODAY + timedelta(days=3))

        scanner.scan_expiry_dates()
        scanner.scan_expiry_dates()

        assert len(all_alerts(session)) == 2


class TestAutoResolve:

    def test_replenished_low_stock_alert_resolved(self, session, scanner, create_product, deterministic_clock):
        product = create_product(minimum_stock=10, current_stock=3)
        scanner.scan_inventory()

        product.current_stock = 12
        session.commit()
        deterministic_clock.advance(3600)
        result = scanner.scan_inventory()

        [alert] = all_alerts(session)
        assert alert.status == AlertStatus.RESOLVED
        assert alert.resolved_at == deterministic_clock.now()
        assert alert.resolved_by_id == SYSTEM_ACTOR_ID
        assert "[auto-resolved] stock replenished" in alert.notes
        assert result.auto_resolved == 1

    def test_low_stock_still_short_stays_active(self, session, scanner, create_product):
        product = create_product(minimum_stock=10, current_stock=3)
        scanner.scan_inventory()

        product.current_stock = 9
        session.commit()
        result = scanner.auto_resolve_alerts()

        assert result.auto_resolved == 0
        assert all_alerts(session)[0].status == AlertStatus.ACTIVE

    def test_out_of_stock_stays_active_until_minimum_reached(self, session, scanner, create_product):
        product = create_product(minimum_stock=10, current_stock=0)
        scanner.scan_stock_levels()

        product.current_stock = 4
        session.commit()
        scanner.scan_inventory()

        assert len(active_alerts(session, AlertType.OUT_OF_STOCK)) == 1
        [low] = active_alerts(session, AlertType.LOW_STOCK)
        assert low.current_stock == 4

        product.current_stock = 10
        session.commit()
        result = scanner.auto_resolve_alerts()

        assert result.auto_resolved == 2
        assert active_alerts(session) == []

    def test_zero_minimum_out_of_stock_not_cleared_while_empty(self, session, scanner, create_product):
        create_product(minimum_stock=0, current_stock=0)

        result = scanner.scan_inventory()

        assert result.out_of_stock == 1
        assert result.auto_resolved == 0
        assert len(active_alerts(session, AlertType.OUT_OF_STOCK)) == 1

    def test_depleted_lot_resolves_expiry_alert(self, session, scanner, create_product, warehouse, create_lot):
        product = create_product(minimum_stock=0)
        lot = create_lot(product, warehouse, 5, TODAY + timedelta(days=3))
        scanner.scan_expiry_dates()

        session.get(InventoryLot, lot.id).quantity = 0
        session.commit()
        result = scanner.auto_resolve_alerts()

        [alert] = all_alerts(session)
        assert alert.status == AlertStatus.RESOLVED
        assert alert.notes.endswith("[auto-resolved] lot depleted")
        assert result.auto_resolved == 1

    def test_acknowledged_alerts_left_alone(self, session, scanner, create_product):
        product = create_product(minimum_stock=10, current_stock=3)
        scanner.scan_stock_levels()
        all_alerts(session)[0].status = AlertStatus.ACKNOWLEDGED
        product.current_stock = 50
        session.commit()

        result = scanner.auto_resolve_alerts()

        assert result.auto_resolved == 0
        assert all_alerts(session)[0].status == AlertStatus.ACKNOWLEDGED

    def test_disabled_auto_resolve_skips_pass(self, session, create_product, deterministic_clock):
        base = InventorySettings()
        settings = replace(base, alerts=replace(base.alerts, auto_resolve_after_scan=False))
        scanner = InventoryScanner(session, clock=deterministic_clock, settings=settings)
        product = create_product(minimum_stock=10, current_stock=3)
        scanner.scan_inventory()
        product.current_stock = 50
        session.commit()

        result = scanner.scan_inventory()

        assert result.auto_resolved == 0
        assert all_alerts(session)[0].status == AlertStatus.ACTIVE


class TestBulkhead:

    def test_failing_product_is_recorded_and_sweep_continues(self, session, scanner, create_product, monkeypatch, captured_logs):
        broken = create_product(name="Broken", sku="SKU-A", current_stock=0)
        healthy = create_product(name="Healthy", sku="SKU-B", current_stock=0)
        real_check = InventoryScanner._check_product

        def check_product(self, product_id, tally):
            if product_id == broken.id:
                raise RuntimeError("corrupt row")
            return real_check(self, product_id, tally)

        monkeypatch.setattr(InventoryScanner, "_check_product", check_product)

        result = scanner.scan_stock_levels()

        [alert] = all_alerts(session)
        assert alert.product_id == healthy.id
        assert result.out_of_stock == 1
        [error] = result.errors
        assert error.item_type == "product"
        assert error.item_id == str(broken.id)
        assert error.error == "corrupt row"
        assert any(r["message"] == "scan_item_failed" for r in captured_logs())

    def test_failure_after_alert_write_rolls_back_that_item_only(self, session, scanner, create_product, monkeypatch):
        first = create_product(sku="SKU-A", current_stock=0)
        create_product(sku="SKU-B", current_stock=0)
        real_check = InventoryScanner._check_product

        def check_product(self, product_id, tally):
            real_check(self, product_id, tally)
            if product_id == first.id:
                raise RuntimeError("late failure")

        monkeypatch.setattr(InventoryScanner, "_check_product", check_product)

        result = scanner.scan_stock_levels()

        alerts = all_alerts(session)
        assert len(alerts) == 1
        assert alerts[0].product_id != first.id
        assert len(result.errors) == 1

    def test_scan_result_logged(self, scanner, create_product, captured_logs):
        create_product(current_stock=0)

        scanner.scan_inventory()

        [record] = [r for r in captured_logs() if r["message"] == "scan_completed"]
        assert record["out_of_stock"] == 1
        assert record["errors"] == []


class TestCurrentStockDriven:

    def test_issue_to_zero_raises_out_of_stock(self, session, scanner, movement_service, create_product, warehouse, create_lot, test_actor_id):
        product = create_product(minimum_stock=5)
        create_lot(product, warehouse, 8, TODAY + timedelta(days=200))
        movement_service.issue(
            IssueRequest(warehouse.id, "Ward 3", (IssueLine(product.id, 8, Decimal("1.00")),)),
            actor_id=test_actor_id,
        )

        scanner.scan_inventory()

        assert session.get(Product, product.id).current_stock == 0
        [alert] = active_alerts(session)
        assert alert.alert_type == AlertType.OUT_OF_STOCK
