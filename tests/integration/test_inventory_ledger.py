"""
재고 원장 통합 테스트 (SQLite)
"""
import uuid

import pytest
from sqlalchemy import select

from shopcore.models import InventoryAdjustment
from shopcore.services import events
from shopcore.services.exceptions import InsufficientInventory, InvalidAdjustment, ProductNotFound
from shopcore.services.inventory_ledger import AdjustmentReason, InventoryLedger, bulk_adjust


def _adjustments(session_factory, product_id):
    with session_factory() as session:
        return list(
            session.scalars(
                select(InventoryAdjustment).where(InventoryAdjustment.product_id == product_id)
            ).all()
        )


@pytest.fixture
def captured_events():
    received = []
    handlers = {
        events.LOW_STOCK: lambda data: received.append((events.LOW_STOCK, data)),
        events.OUT_OF_STOCK: lambda data: received.append((events.OUT_OF_STOCK, data)),
    }
    for event_type, handler in handlers.items():
        events.bus.subscribe(event_type, handler)
    yield received
    for event_type, handler in handlers.items():
        events.bus.unsubscribe(event_type, handler)


@pytest.mark.integration
class TestDecrement:
    def test_decrement_appends_reserve_record(self, session_factory, clock, make_product, get_product):
        product = make_product(inventory=5)

        with session_factory() as session:
            with session.begin():
                remaining = InventoryLedger(session, clock).decrement(product.id, 3)

        assert remaining == 2
        assert get_product(product.id).inventory == 2

        records = _adjustments(session_factory, product.id)
        assert len(records) == 1
        assert records[0].quantity_delta == -3
        assert records[0].reason == AdjustmentReason.ORDER_RESERVE.value

    def test_insufficient_stock_reports_available(self, session_factory, clock, make_product, get_product):
        product = make_product(inventory=2)

        with pytest.raises(InsufficientInventory) as excinfo:
            with session_factory() as session:
                with session.begin():
                    InventoryLedger(session, clock).decrement(product.id, 3)

        assert excinfo.value.requested == 3
        assert excinfo.value.available == 2
        assert excinfo.value.context["product_id"] == str(product.id)
        assert get_product(product.id).inventory == 2
        assert _adjustments(session_factory, product.id) == []

    def test_unknown_product(self, session_factory, clock):
        with pytest.raises(ProductNotFound):
            with session_factory() as session:
                with session.begin():
                    InventoryLedger(session, clock).decrement(uuid.uuid4(), 1)

    def test_threshold_events_published_after_flush(self, session_factory, clock, make_product, captured_events):
        product = make_product(inventory=6, low_stock_threshold=5)

        with session_factory() as session:
            with session.begin():
                ledger = InventoryLedger(session, clock)
                ledger.decrement(product.id, 2)
            assert captured_events == []
        ledger.flush_events()

        assert captured_events == [
            (events.LOW_STOCK, {"product_id": str(product.id), "inventory": 4, "threshold": 5})
        ]

        with session_factory() as session:
            with session.begin():
                ledger = InventoryLedger(session, clock)
                ledger.decrement(product.id, 4)
        ledger.flush_events()

        assert captured_events[-1] == (events.OUT_OF_STOCK, {"product_id": str(product.id), "inventory": 0})


@pytest.mark.integration
class TestRestoreOrder:
    def test_unknown_order(self, session_factory, clock):
        from shopcore.services.exceptions import OrderNotFound

        with pytest.raises(OrderNotFound):
            with session_factory() as session:
                with session.begin():
                    InventoryLedger(session, clock).restore_order(uuid.uuid4())

    def test_restore_is_guarded_per_order(self, session_factory, clock, make_product, get_product,
                                          order_service, order_input):
        product = make_product(inventory=5)
        order = order_service.create_order(order_input([(product, 2)]))
        assert get_product(product.id).inventory == 3

        for _ in range(2):
            with session_factory() as session:
                with session.begin():
                    InventoryLedger(session, clock).restore_order(order.id, created_by="test")

        assert get_product(product.id).inventory == 5
        restores = [
            r for r in _adjustments(session_factory, product.id)
            if r.reason == AdjustmentReason.ORDER_CANCEL_RESTORE.value
        ]
        assert len(restores) == 1
        assert restores[0].quantity_delta == 2
        assert restores[0].order_id == order.id


@pytest.mark.integration
class TestAdjust:
    def test_manual_adjust(self, session_factory, clock, make_product, get_product):
        product = make_product(inventory=3)

        with session_factory() as session:
            with session.begin():
                result = InventoryLedger(session, clock).adjust(product.id, 7, created_by="admin", note="입고")

        assert result == 10
        assert get_product(product.id).inventory == 10
        record = _adjustments(session_factory, product.id)[0]
        assert record.reason == AdjustmentReason.MANUAL_ADJUST.value
        assert record.created_by == "admin"
        assert record.note == "입고"

    def test_adjust_never_goes_negative(self, session_factory, clock, make_product, get_product):
        product = make_product(inventory=3)

        with pytest.raises(InvalidAdjustment) as excinfo:
            with session_factory() as session:
                with session.begin():
                    InventoryLedger(session, clock).adjust(product.id, -4, created_by="admin")

        assert excinfo.value.current == 3
        assert get_product(product.id).inventory == 3

    def test_adjust_unknown_product(self, session_factory, clock):
        with pytest.raises(ProductNotFound):
            with session_factory() as session:
                with session.begin():
                    InventoryLedger(session, clock).adjust(uuid.uuid4(), 1, created_by="admin")

    def test_bulk_adjust_isolates_failures(self, session_factory, clock, make_product, get_product):
        ok = make_product(inventory=1)
        short = make_product(inventory=1)
        missing = uuid.uuid4()

        result = bulk_adjust(
            session_factory,
            [
                {"product_id": ok.id, "delta": 4},
                {"product_id": short.id, "delta": -2},
                {"product_id": missing, "delta": 1},
            ],
            created_by="admin",
            clock=clock,
        )

        assert result["processed"] == 3
        assert result["updated"] == 1
        assert result["failed"] == 2
        assert {e["error_code"] for e in result["errors"]} == {"INVALID_ADJUSTMENT", "PRODUCT_NOT_FOUND"}
        assert get_product(ok.id).inventory == 5
        assert get_product(short.id).inventory == 1

    def test_bulk_adjust_records_given_reason(self, session_factory, clock, make_product):
        product = make_product(inventory=2)

        bulk_adjust(
            session_factory,
            [{"product_id": product.id, "delta": 3}],
            created_by="warehouse",
            reason=AdjustmentReason.ORDER_CANCEL_RESTORE,
            note="반품 입고",
            clock=clock,
        )
        bulk_adjust(session_factory, [{"product_id": product.id, "delta": -1}], created_by="admin", clock=clock)

        rows = sorted(_adjustments(session_factory, product.id), key=lambda r: r.quantity_delta, reverse=True)
        assert [(r.quantity_delta, r.reason, r.created_by) for r in rows] == [
            (3, "ORDER_CANCEL_RESTORE", "warehouse"),
            (-1, "MANUAL_ADJUST", "admin"),
        ]
        assert rows[0].note == "반품 입고"


@pytest.mark.integration
class TestStockReads:
    def test_low_stock_ordering_and_out_of_stock(self, session_factory, clock, make_product):
        a = make_product(name="A", inventory=3, low_stock_threshold=5)
        b = make_product(name="B", inventory=1, low_stock_threshold=5)
        c = make_product(name="C", inventory=3, low_stock_threshold=5)
        make_product(name="D", inventory=50, low_stock_threshold=5)
        empty = make_product(name="E", inventory=0, low_stock_threshold=5)

        with session_factory() as session:
            ledger = InventoryLedger(session, clock)
            low = ledger.low_stock_products(limit=10)
            out = ledger.out_of_stock_products(limit=10)

        tied = sorted([a, c], key=lambda p: str(p.id))
        assert [row["id"] for row in low] == [str(b.id)] + [str(p.id) for p in tied]
        assert all(row["status"] == "LOW_STOCK" for row in low)
        assert [row["id"] for row in out] == [str(empty.id)]

    def test_summary_and_history(self, session_factory, clock, make_product):
        product = make_product(inventory=4, price="2.50", low_stock_threshold=5)
        make_product(inventory=0, price="1.00")

        with session_factory() as session:
            with session.begin():
                ledger = InventoryLedger(session, clock)
                ledger.adjust(product.id, 1, created_by="admin")
                clock.advance(seconds=1)
                ledger.adjust(product.id, -2, created_by="admin")

        with session_factory() as session:
            ledger = InventoryLedger(session, clock)
            summary = ledger.get_inventory_summary()
            history = ledger.get_inventory_history(product_id=product.id)

        assert summary["total_products"] == 2
        assert summary["total_units"] == 3
        assert str(summary["total_value"]) == "7.50"
        assert summary["low_stock_count"] == 1
        assert summary["out_of_stock_count"] == 1
        assert [h.quantity_delta for h in history] == [-2, 1]
