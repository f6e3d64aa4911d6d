"""Pricing: pure functions for line, cart and order totals.

Totals are always recomputed from their parts, never accumulated
incrementally, so a stored total can always be checked against its lines.
Missing inputs contribute zero instead of raising.
"""

from typing import Iterable, Optional, Union

from tableorder.schemas.catalog import MenuItem, Topping
from tableorder.schemas.order import Cart, OrderItem

Number = Union[int, float]


def _amount(value: Optional[Number]) -> Number:
    return value if value is not None else 0


def unit_price(item: Optional[MenuItem], toppings: Optional[Iterable[Optional[Topping]]] = None) -> Number:
    """Menu price plus the price of every selected topping."""
    base = _amount(item.price) if item is not None else 0
    return base + sum(_amount(t.price) for t in (toppings or []) if t is not None)


def line_total(
    item: Optional[MenuItem],
    toppings: Optional[Iterable[Optional[Topping]]],
    quantity: Optional[int],
) -> Number:
    """``(item.price + sum(topping prices)) * quantity``."""
    return unit_price(item, toppings) * _amount(quantity)


def cart_total(cart: Optional[Cart]) -> Number:
    if cart is None:
        return 0
    return sum(line_total(line.menu_item, line.selected_toppings, line.quantity) for line in cart.lines)


def order_item_total(item: OrderItem) -> Number:
    return _amount(item.price) * _amount(item.quantity)


def order_total(items: Iterable[OrderItem]) -> Number:
    """Sum of frozen ``price * quantity`` over order lines."""
    return sum(order_item_total(item) for item in items)
