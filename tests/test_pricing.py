"""Tests for the pricing functions."""

from tableorder.schemas.catalog import MenuItem, Topping
from tableorder.schemas.order import Cart, CartLine, OrderItem
from tableorder.services.pricing_service import cart_total, line_total, order_total, unit_price


def _item(price=45000):
    return MenuItem(id="m1", name="Gỏi Cuốn Hoa Sen", price=price, branch_ids=["cn1"])


class TestLineTotal:
    def test_plain_item(self):
        assert line_total(_item(), [], 2) == 90000

    def test_toppings_are_added_per_unit(self):
        toppings = [Topping(id="t1", price=15000), Topping(id="t2", price=10000)]
        assert unit_price(_item(60000), toppings) == 85000
        assert line_total(_item(60000), toppings, 3) == 255000

    def test_missing_inputs_count_as_zero(self):
        assert line_total(None, None, 2) == 0
        assert line_total(_item(), None, None) == 0
        assert unit_price(_item(), [None, Topping(id="t1", price=5000)]) == 50000

    def test_zero_priced_item(self):
        assert line_total(_item(0), [Topping(id="t4", price=0)], 4) == 0


class TestCartTotal:
    def test_sum_of_lines(self):
        cart = Cart(lines=[
            CartLine(menu_item=_item(45000), quantity=2),
            CartLine(menu_item=_item(60000), quantity=1, selected_toppings=[Topping(id="t3", price=5000)]),
        ])
        assert cart_total(cart) == 90000 + 65000

    def test_empty_and_missing_cart(self):
        assert cart_total(Cart()) == 0
        assert cart_total(None) == 0


class TestOrderTotal:
    def test_uses_frozen_unit_prices(self):
        items = [
            OrderItem(menu_item_id="m1", quantity=2, price=45000),
            OrderItem(menu_item_id="m5", quantity=1, price=75000),
        ]
        assert order_total(items) == 165000

    def test_empty_order(self):
        assert order_total([]) == 0
