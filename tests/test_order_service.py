"""Order creation: price snapshot, stock reservation, atomicity."""

import threading
from decimal import Decimal

import pytest

from app.data.database import SessionLocal
from app.data.models import OrderModel
from app.domain.errors import EmptyCart, InsufficientStock, InvalidAmount, ValidationError
from app.repos.order_repo import OrderRepo
from app.services.order_service import OrderService, _normalize_lines, to_minor_units


def _order_count():
    session = SessionLocal()
    try:
        return session.query(OrderModel).count()
    finally:
        session.close()


class TestCreateOrder:
    def test_order_snapshots_prices_and_reserves_stock(self, db, make_product, stock_of, billing):
        make_product("A", "100.00", 5)
        make_product("B", "50.00", 2)

        order = OrderService(db).create_order(
            "acc-1",
            [{"product_id": "A", "quantity": 2}, {"product_id": "B", "quantity": 1}],
            billing,
        )

        assert order.status == "pending"
        assert order.total_amount == Decimal("250.00")
        assert order.amount_minor_units == 25000
        assert order.currency == "INR"
        assert order.order_number.startswith("ORD-")
        snapshots = {i.product_id: (i.unit_price_snapshot, i.line_total) for i in order.items}
        assert snapshots == {
            "A": (Decimal("100.00"), Decimal("200.00")),
            "B": (Decimal("50.00"), Decimal("50.00")),
        }
        assert stock_of("A") == 3
        assert stock_of("B") == 1

    def test_snapshot_not_affected_by_later_price_change(self, db, make_product, billing):
        product = make_product("A", "100.00", 5)
        order = OrderService(db).create_order("acc-1", [{"product_id": "A", "quantity": 1}], billing)

        product.price = Decimal("999.00")
        db.commit()

        stored = OrderService(db).get_order(order.id, "acc-1")
        assert stored["line_items"][0]["unit_price_snapshot"] == Decimal("100.00")
        assert stored["total_amount"] == Decimal("100.00")

    def test_insufficient_stock_leaves_everything_untouched(self, db, make_product, stock_of, billing):
        make_product("A", "100.00", 5)
        make_product("B", "50.00", 2)

        with pytest.raises(InsufficientStock) as exc:
            OrderService(db).create_order(
                "acc-1",
                [{"product_id": "A", "quantity": 1}, {"product_id": "B", "quantity": 3}],
                billing,
            )

        assert exc.value.product_id == "B"
        assert exc.value.field == "productId"
        assert exc.value.requested == 3
        assert exc.value.available == 2
        assert stock_of("A") == 5
        assert stock_of("B") == 2
        assert _order_count() == 0

    def test_empty_cart_rejected(self, db, billing):
        with pytest.raises(EmptyCart):
            OrderService(db).create_order("acc-1", [], billing)

    def test_zero_total_rejected(self, db, make_product, billing):
        make_product("FREE", "0.00", 5)
        with pytest.raises(InvalidAmount):
            OrderService(db).create_order("acc-1", [{"product_id": "FREE", "quantity": 1}], billing)

    def test_total_below_minimum_rejected(self, db, make_product, stock_of, billing):
        make_product("CHEAP", "0.50", 5)
        with pytest.raises(InvalidAmount):
            OrderService(db).create_order("acc-1", [{"product_id": "CHEAP", "quantity": 1}], billing)
        assert stock_of("CHEAP") == 5

    def test_unknown_product_rejected(self, db, billing):
        with pytest.raises(ValidationError) as exc:
            OrderService(db).create_order("acc-1", [{"product_id": "ghost", "quantity": 1}], billing)
        assert exc.value.field == "productId"
        assert "ghost" in exc.value.message

    @pytest.mark.parametrize("quantity", [0, -2, 1.5, "1"])
    def test_bad_quantity_rejected(self, db, make_product, billing, quantity):
        make_product("A", "100.00", 5)
        with pytest.raises(ValidationError) as exc:
            OrderService(db).create_order("acc-1", [{"product_id": "A", "quantity": quantity}], billing)
        assert exc.value.field == "quantity"

    def test_missing_contact_rejected(self, db, make_product, billing):
        make_product("A", "100.00", 5)
        billing.contact_phone = " "
        with pytest.raises(ValidationError) as exc:
            OrderService(db).create_order("acc-1", [{"product_id": "A", "quantity": 1}], billing)
        assert exc.value.field == "contactPhone"

    def test_client_total_mismatch_rejected(self, db, make_product, stock_of, billing):
        make_product("A", "120.00", 5)
        billing.total_amount = Decimal("100.00")

        with pytest.raises(ValidationError) as exc:
            OrderService(db).create_order("acc-1", [{"product_id": "A", "quantity": 1}], billing)

        assert exc.value.field == "totalAmount"
        assert stock_of("A") == 5

    def test_matching_client_total_accepted(self, db, make_product, billing):
        make_product("A", "120.00", 5)
        billing.total_amount = Decimal("120")
        order = OrderService(db).create_order("acc-1", [{"product_id": "A", "quantity": 1}], billing)
        assert order.total_amount == Decimal("120.00")

    def test_duplicate_lines_are_summed(self, db, make_product, stock_of, billing):
        make_product("A", "100.00", 5)
        order = OrderService(db).create_order(
            "acc-1",
            [{"product_id": "A", "quantity": 1}, {"product_id": "A", "quantity": 2}],
            billing,
        )
        assert [(i.product_id, i.quantity) for i in order.items] == [("A", 3)]
        assert stock_of("A") == 2

    def test_failure_after_stock_decrement_rolls_back(self, db, make_product, stock_of, billing, monkeypatch):
        make_product("A", "100.00", 5)

        def crash(self, order):
            raise RuntimeError("process died mid-transaction")

        monkeypatch.setattr(OrderRepo, "add_order", crash)

        with pytest.raises(RuntimeError):
            OrderService(db).create_order("acc-1", [{"product_id": "A", "quantity": 2}], billing)

        assert stock_of("A") == 5
        assert _order_count() == 0


class TestConcurrentCheckout:
    def test_last_unit_sold_once(self, make_product, stock_of, billing):
        make_product("LAST", "100.00", 1)
        outcomes = []
        lock = threading.Lock()

        def buyer(account_id):
            session = SessionLocal()
            try:
                OrderService(session).create_order(account_id, [{"product_id": "LAST", "quantity": 1}], billing)
                result = "ok"
            except InsufficientStock:
                result = "sold_out"
            finally:
                session.close()
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=buyer, args=(f"acc-{n}",)) for n in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(outcomes) == ["ok", "sold_out"]
        assert stock_of("LAST") == 0
        assert _order_count() == 1


class TestHelpers:
    def test_minor_units_round_half_up(self):
        assert to_minor_units(Decimal("250.00")) == 25000
        assert to_minor_units(Decimal("0.005")) == 1

    def test_normalize_accepts_camel_case_keys(self):
        assert _normalize_lines([{"productId": "A", "quantity": 1}]) == {"A": 1}
