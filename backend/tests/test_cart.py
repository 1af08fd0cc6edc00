"""
Cart builder tests.

Verifies:
- Price snapshot at add time
- Quantities stay within [1, stock]
- Strict building from API input
"""

import pytest

from shopdesk.models import Product
from shopdesk.services import stock_service
from shopdesk.services.cart import Cart, CartError


class TestAddItem:

    def test_new_line_uses_current_price(self, db_session, product_a):
        cart = Cart()
        cart.add_item(product_a)

        line = cart.get(product_a.id)
        assert line.quantity == 1
        assert line.unit_price_cents == 1000
        assert cart.total() == 1000

    def test_existing_line_increments(self, db_session, product_a):
        cart = Cart()
        cart.add_item(product_a)
        cart.add_item(product_a)
        assert cart.get(product_a.id).quantity == 2

    def test_add_stops_at_stock(self, db_session, product_b):
        cart = Cart()
        for _ in range(6):
            cart.add_item(product_b)
        assert cart.get(product_b.id).quantity == 4

    def test_add_follows_restocked_quantity(self, db_session, operator, product_b):
        cart = Cart()
        for _ in range(4):
            cart.add_item(product_b)

        stock_service.record_purchase(operator, product_b.id, 6)
        fresh = db_session.get(Product, product_b.id)
        cart.add_item(fresh)

        assert cart.get(product_b.id).quantity == 5
        cart.change_quantity(product_b.id, 5)
        assert cart.get(product_b.id).quantity == 10

    def test_out_of_stock_product_not_added(self, db_session, product_a):
        product_a.stock_quantity = 0
        cart = Cart()
        cart.add_item(product_a)
        assert cart.is_empty()

    def test_total_ignores_later_price_change(self, db_session, product_a, product_b):
        cart = Cart()
        cart.add_item(product_a)
        cart.add_item(product_a)
        cart.add_item(product_b)

        product_a.price_cents = 9999
        assert cart.total() == 2 * 1000 + 500


class TestChangeQuantity:

    def test_in_range_delta_applies(self, db_session, product_a):
        cart = Cart()
        cart.add_item(product_a)
        cart.change_quantity(product_a.id, 4)
        assert cart.get(product_a.id).quantity == 5

    def test_below_one_is_noop(self, db_session, product_a):
        cart = Cart()
        cart.add_item(product_a)
        cart.change_quantity(product_a.id, -1)
        assert cart.get(product_a.id).quantity == 1

    def test_above_stock_is_noop(self, db_session, product_b):
        cart = Cart()
        cart.add_item(product_b)
        cart.change_quantity(product_b.id, 10)
        assert cart.get(product_b.id).quantity == 1

    def test_unknown_product_is_noop(self, db_session):
        cart = Cart()
        cart.change_quantity(42, 1)
        assert cart.is_empty()


def test_remove_item(db_session, product_a, product_b):
    cart = Cart()
    cart.add_item(product_a)
    cart.add_item(product_b)
    cart.remove_item(product_a.id)

    assert [line.product_id for line in cart] == [product_b.id]
    assert cart.total() == 500


class TestFromRequestedLines:

    def test_builds_requested_quantities(self, db_session, product_a, product_b):
        cart = Cart.from_requested_lines(
            [product_a, product_b],
            [{"product_id": product_a.id, "quantity": 2}, {"product_id": product_b.id, "quantity": 1}],
        )
        assert cart.total() == 2500
        assert len(cart) == 2

    def test_quantity_above_stock_raises(self, db_session, product_b):
        with pytest.raises(CartError) as exc:
            Cart.from_requested_lines([product_b], [{"product_id": product_b.id, "quantity": 5}])
        assert exc.value.details["available"] == 4

    def test_unknown_product_raises(self, db_session, product_a):
        with pytest.raises(CartError):
            Cart.from_requested_lines([product_a], [{"product_id": 999, "quantity": 1}])

    def test_zero_quantity_raises(self, db_session, product_a):
        with pytest.raises(CartError):
            Cart.from_requested_lines([product_a], [{"product_id": product_a.id, "quantity": 0}])
