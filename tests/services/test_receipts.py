"""
Receipts: lot upsert on the four-field identity key, ledger rows, and
the current-stock counter.
"""

import re
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from pharmacy_kernel.domain.dtos import ReceiptLine, ReceiptRequest
from pharmacy_kernel.domain.types import TransactionType
from pharmacy_kernel.exceptions import ReferenceNotFoundError, ValidationError
from pharmacy_kernel.models.inventory_lot import InventoryLot
from pharmacy_kernel.models.product import Product
from pharmacy_kernel.models.stock_transaction import StockTransaction, TransactionDetail

EXPIRY = date(2025, 12, 31)


@pytest.fixture
def product(create_product):
    return create_product(name="Paracetamol 500mg", sku="PARA-500")


@pytest.fixture
def receive(movement_service, warehouse, supplier, test_actor_id):
    def _receive(*lines, warehouse_id=None, supplier_id=None):
        return movement_service.receive(
            ReceiptRequest(
                warehouse_id=warehouse_id or warehouse.id,
                supplier_id=supplier_id or supplier.id,
                lines=tuple(lines),
            ),
            actor_id=test_actor_id,
        )

    return _receive


def lot_count(session, product_id):
    return session.execute(
        select(func.count()).select_from(InventoryLot).where(InventoryLot.product_id == product_id)
    ).scalar_one()


class TestLotUpsert:

    def test_repeat_receipt_of_same_lot_increments_in_place(self, session, receive, product):
        first = receive(ReceiptLine(product.id, 50, Decimal("1.20"), lot_number="B-100", expiry_date=EXPIRY))
        second = receive(ReceiptLine(product.id, 30, Decimal("1.20"), lot_number="B-100", expiry_date=EXPIRY))

        assert first.lots[0].created is True
        assert second.lots[0].created is False
        assert second.lots[0].lot_id == first.lots[0].lot_id
        assert second.lots[0].quantity_after == 80
        assert lot_count(session, product.id) == 1
        assert session.get(InventoryLot, first.lots[0].lot_id).quantity == 80

    def test_different_expiry_creates_a_new_lot(self, session, receive, product):
        receive(ReceiptLine(product.id, 50, Decimal("1"), lot_number="B-100", expiry_date=EXPIRY))
        receive(ReceiptLine(product.id, 30, Decimal("1"), lot_number="B-100", expiry_date=date(2026, 6, 30)))

        assert lot_count(session, product.id) == 2

    def test_missing_expiry_only_matches_undated_lot(self, session, receive, product):
        receive(ReceiptLine(product.id, 50, Decimal("1"), lot_number="B-100", expiry_date=EXPIRY))
        undated = receive(ReceiptLine(product.id, 5, Decimal("1"), lot_number="B-100"))
        again = receive(ReceiptLine(product.id, 5, Decimal("1"), lot_number="B-100"))

        assert undated.lots[0].created is True
        assert again.lots[0].lot_id == undated.lots[0].lot_id
        assert again.lots[0].quantity_after == 10
        assert lot_count(session, product.id) == 2

    def test_same_lot_in_another_warehouse_is_separate(self, session, receive, product, create_warehouse):
        other = create_warehouse(code="WH-2", name="Ward Store")
        receive(ReceiptLine(product.id, 50, Decimal("1"), lot_number="B-100", expiry_date=EXPIRY))
        receive(ReceiptLine(product.id, 50, Decimal("1"), lot_number="B-100", expiry_date=EXPIRY), warehouse_id=other.id)

        assert lot_count(session, product.id) == 2

    def test_lot_number_generated_when_omitted(self, receive, product):
        result = receive(ReceiptLine(product.id, 10, Decimal("1"), expiry_date=EXPIRY))

        assert re.fullmatch(r"LOT-20240601-080000-\d{4}", result.lots[0].lot_number)


class TestReceiptLedger:

    def test_one_inbound_transaction_with_a_detail_per_line(self, session, receive, product, create_product, warehouse, supplier, test_actor_id):
        other = create_product()
        result = receive(
            ReceiptLine(product.id, 50, Decimal("1.20"), lot_number="A", expiry_date=EXPIRY),
            ReceiptLine(other.id, 20, Decimal("3.00"), lot_number="B", expiry_date=EXPIRY),
        )

        tx = session.get(StockTransaction, result.transaction_id)
        assert tx.transaction_type == TransactionType.INBOUND
        assert tx.destination_warehouse_id == warehouse.id
        assert tx.supplier_id == supplier.id
        assert tx.source_warehouse_id is None
        assert tx.user_id == test_actor_id
        assert sorted(d.quantity for d in tx.details) == [20, 50]
        assert {d.inventory_lot_id for d in tx.details} == {l.lot_id for l in result.lots}
        assert result.total_amount == Decimal("120.00")

    def test_current_stock_counter_follows_receipts(self, session, receive, product):
        receive(ReceiptLine(product.id, 50, Decimal("1"), lot_number="A", expiry_date=EXPIRY))
        receive(ReceiptLine(product.id, 25, Decimal("1"), lot_number="B", expiry_date=EXPIRY))

        assert session.get(Product, product.id).current_stock == 75

    def test_receipt_logged(self, receive, product, captured_logs):
        receive(ReceiptLine(product.id, 5, Decimal("1"), lot_number="A"))

        records = [r for r in captured_logs() if r["message"] == "receipt_recorded"]
        assert len(records) == 1
        assert records[0]["lots_created"] == 1


class TestReceiptValidation:

    def test_all_field_errors_reported_together(self, movement_service, test_actor_id, product):
        request = ReceiptRequest(
            warehouse_id=None,
            supplier_id=None,
            lines=(ReceiptLine(product.id, 0, Decimal("-1")),),
        )

        with pytest.raises(ValidationError) as exc_info:
            movement_service.receive(request, actor_id=test_actor_id)

        fields = {e["field"] for e in exc_info.value.field_errors}
        assert fields == {"warehouse_id", "supplier_id", "lines[0].quantity", "lines[0].unit_price"}

    def test_empty_lines_rejected(self, receive):
        with pytest.raises(ValidationError):
            receive()

    def test_unknown_product_aborts_without_writes(self, session, receive, product):
        with pytest.raises(ReferenceNotFoundError) as exc_info:
            receive(
                ReceiptLine(product.id, 5, Decimal("1"), lot_number="A"),
                ReceiptLine(uuid4(), 5, Decimal("1"), lot_number="B"),
            )

        assert exc_info.value.entity_type == "Product"
        assert session.execute(select(func.count()).select_from(TransactionDetail)).scalar_one() == 0
        assert lot_count(session, product.id) == 0

    def test_unknown_supplier_rejected(self, receive, product):
        with pytest.raises(ReferenceNotFoundError) as exc_info:
            receive(ReceiptLine(product.id, 5, Decimal("1")), supplier_id=uuid4())
        assert exc_info.value.entity_type == "Supplier"
