"""Account cart: additive add, absolute set_quantity, idempotent remove."""

import threading
from decimal import Decimal

import pytest

from app.data.database import SessionLocal
from app.domain.errors import ValidationError
from app.services.cart_service import CartService


def _quantities(cart):
    return {i["product_id"]: i["quantity"] for i in cart["items"]}


class TestCartCommands:
    def test_add_creates_line(self, db, make_product):
        make_product("A", "100.00", 10)
        cart = CartService(db).add_product("acc-1", "A", 2)
        assert _quantities(cart) == {"A": 2}

    def test_add_is_additive(self, db, make_product):
        make_product("A", "100.00", 10)
        svc = CartService(db)
        svc.add_product("acc-1", "A", 2)
        cart = svc.add_product("acc-1", "A", 3)
        assert _quantities(cart) == {"A": 5}

    def test_set_quantity_is_absolute(self, db, make_product):
        make_product("A", "100.00", 10)
        svc = CartService(db)
        svc.add_product("acc-1", "A", 4)
        cart = svc.set_quantity("acc-1", "A", 1)
        assert _quantities(cart) == {"A": 1}

    def test_set_quantity_inserts_missing_line(self, db, make_product):
        make_product("A", "100.00", 10)
        cart = CartService(db).set_quantity("acc-1", "A", 3)
        assert _quantities(cart) == {"A": 3}

    def test_set_quantity_zero_removes(self, db, make_product):
        make_product("A", "100.00", 10)
        svc = CartService(db)
        svc.add_product("acc-1", "A", 4)
        cart = svc.set_quantity("acc-1", "A", 0)
        assert cart["items"] == []

    def test_remove_is_idempotent(self, db, make_product):
        make_product("A", "100.00", 10)
        svc = CartService(db)
        svc.add_product("acc-1", "A", 1)
        svc.remove_product("acc-1", "A")
        cart = svc.remove_product("acc-1", "A")
        assert cart["items"] == []

    def test_carts_are_account_scoped(self, db, make_product):
        make_product("A", "100.00", 10)
        svc = CartService(db)
        svc.add_product("acc-1", "A", 1)
        assert svc.get_cart("acc-2")["items"] == []

    @pytest.mark.parametrize("bad", [0, -1, True, "2"])
    def test_add_rejects_non_positive_quantity(self, db, make_product, bad):
        make_product("A", "100.00", 10)
        with pytest.raises(ValidationError) as exc:
            CartService(db).add_product("acc-1", "A", bad)
        assert exc.value.field == "quantity"

    def test_add_unknown_product_names_it(self, db):
        with pytest.raises(ValidationError) as exc:
            CartService(db).add_product("acc-1", "ghost", 1)
        assert "ghost" in exc.value.message


class TestCartQuery:
    def test_get_joins_current_catalog_price(self, db, make_product):
        product = make_product("A", "100.00", 10, name="Dupatta")
        svc = CartService(db)
        svc.add_product("acc-1", "A", 2)

        product.price = Decimal("120.00")
        db.commit()

        cart = svc.get_cart("acc-1")
        line = cart["items"][0]
        assert line["name"] == "Dupatta"
        assert line["price"] == Decimal("120.00")
        assert line["available"] is True
        assert cart["subtotal"] == Decimal("240.00")
        assert cart["total_items"] == 2

    def test_line_over_stock_is_flagged_unavailable(self, db, make_product):
        make_product("A", "100.00", 1)
        cart = CartService(db).add_product("acc-1", "A", 3)
        assert cart["items"][0]["available"] is False


class TestConcurrentAdds:
    def test_no_lost_updates_between_tabs(self, db, make_product):
        make_product("A", "10.00", 100)
        CartService(db).add_product("acc-1", "A", 1)

        per_thread = 15
        errors = []

        def worker():
            session = SessionLocal()
            try:
                svc = CartService(session)
                for _ in range(per_thread):
                    svc.add_product("acc-1", "A", 1)
            except Exception as e:  # noqa: BLE001
                errors.append(e)
            finally:
                session.close()

        threads = [threading.Thread(target=worker) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        fresh = SessionLocal()
        try:
            assert _quantities(CartService(fresh).get_cart("acc-1")) == {"A": 1 + 3 * per_thread}
        finally:
            fresh.close()

    def test_sequence_of_mixed_operations(self, db, make_product):
        make_product("A", "10.00", 100)
        svc = CartService(db)
        svc.add_product("acc-1", "A", 2)
        svc.set_quantity("acc-1", "A", 5)
        svc.add_product("acc-1", "A", 1)
        svc.remove_product("acc-1", "A")
        svc.add_product("acc-1", "A", 4)
        assert _quantities(svc.get_cart("acc-1")) == {"A": 4}
