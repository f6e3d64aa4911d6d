"""Order builder: cart editing, validation and order submission.

Submitting is a whole-collection write: the new order is prepended to the
in-memory order list of the caller's latest snapshot and the entire list is
written back with ``replace_subtree("orders", ...)``. If two customers
submit from the same snapshot, the second write silently drops the first
order. The store offers no compare-and-swap, so this is a known gap rather
than a handled error.
"""

import logging
import time
from typing import Any, Dict, List, Optional, Sequence, Union
from uuid import uuid4

from tableorder.core.errors import OrderValidationError
from tableorder.db.store import DocumentStore
from tableorder.schemas.catalog import MenuItem, Topping
from tableorder.schemas.order import Cart, CartLine, Order, OrderItem, OrderStatus, PaymentMethod
from tableorder.schemas.snapshot import StoreSnapshot
from tableorder.services.pricing_service import order_total, unit_price

logger = logging.getLogger(__name__)

ORDERS_PATH = "orders"


def now_ms() -> int:
    return int(time.time() * 1000)


def new_order_id(timestamp: int) -> str:
    return f"o{timestamp}{uuid4().hex[:4]}"


def clean_note(note: Optional[str]) -> Optional[str]:
    if note is None:
        return None
    note = note.strip()
    return note or None


def parse_table_number(value: Union[str, int, None]) -> Optional[int]:
    """Positive table number, or None when missing or invalid."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    text = str(value).strip()
    if not text.isdigit():
        return None
    number = int(text)
    return number if number > 0 else None


# ===== Cart editing =====

def add_to_cart(cart: Cart, item: MenuItem, quantity: int = 1,
                toppings: Optional[List[Topping]] = None, note: Optional[str] = None) -> CartLine:
    """Add ``item`` to the cart, merging with a line that has the same toppings and note."""
    toppings = list(toppings or [])
    topping_ids = tuple(sorted(t.id for t in toppings))
    note = clean_note(note)

    for line in cart.lines:
        if line.menu_item.id == item.id and line.topping_ids == topping_ids and line.note == note:
            line.quantity += quantity
            return line

    line = CartLine(
        menu_item=item.model_copy(deep=True),
        quantity=quantity,
        note=note,
        selected_toppings=[t.model_copy() for t in toppings],
    )
    cart.lines.append(line)
    return line


def _find_line(cart: Cart, instance_id: str) -> Optional[CartLine]:
    return next((line for line in cart.lines if line.instance_id == instance_id), None)


def decrement_line(cart: Cart, instance_id: str) -> Optional[CartLine]:
    """Remove one unit; the line disappears when it reaches zero."""
    line = _find_line(cart, instance_id)
    if line is None:
        return None
    if line.quantity > 1:
        line.quantity -= 1
        return line
    cart.lines.remove(line)
    return None


def remove_line(cart: Cart, instance_id: str) -> None:
    cart.lines = [line for line in cart.lines if line.instance_id != instance_id]


def set_line_note(cart: Cart, instance_id: str, note: Optional[str]) -> None:
    line = _find_line(cart, instance_id)
    if line is not None:
        line.note = clean_note(note)


def clear_cart(cart: Cart) -> None:
    """Abandon the pending order. The selected branch is kept."""
    cart.lines = []
    cart.note = ""
    cart.table_number = None


# ===== Validation =====

def resolve_toppings(snapshot: StoreSnapshot, item: MenuItem, topping_ids: List[str]) -> List[Topping]:
    """Catalog toppings for ``topping_ids``; an id the catalog lacks is rejected."""
    by_id = {t.id: t for t in snapshot.toppings}
    unknown = [tid for tid in topping_ids if tid not in by_id]
    if unknown:
        raise OrderValidationError(
            OrderValidationError.TOPPING_SELECTION,
            f"'{item.name}' does not offer topping '{unknown[0]}'",
            menu_item_id=item.id,
        )
    return [by_id[tid] for tid in topping_ids]



def validate_topping_selection(item: MenuItem, selected: List[Topping], snapshot: StoreSnapshot) -> None:
    """Re-check ``minSelection <= chosen <= maxSelection`` for every group of ``item``."""
    groups = snapshot.topping_groups_for(item)
    offered = set()

    for group in groups:
        group_ids = set(group.topping_ids)
        offered |= group_ids
        chosen = sum(1 for t in selected if t.id in group_ids)
        if not group.min_selection <= chosen <= group.max_selection:
            if group.min_selection == group.max_selection:
                expected = f"exactly {group.min_selection}"
            else:
                expected = f"between {group.min_selection} and {group.max_selection}"
            raise OrderValidationError(
                OrderValidationError.TOPPING_SELECTION,
                f"'{item.name}': choose {expected} from '{group.name}' ({chosen} selected)",
                menu_item_id=item.id,
            )

    stray = [t for t in selected if t.id not in offered]
    if stray:
        raise OrderValidationError(
            OrderValidationError.TOPPING_SELECTION,
            f"'{item.name}' does not offer topping '{stray[0].name or stray[0].id}'",
            menu_item_id=item.id,
        )


def _freeze_line(line: CartLine, snapshot: StoreSnapshot, branch_id: str) -> OrderItem:
    item = snapshot.menu_item(line.menu_item.id)
    if item is None or item.is_out_of_stock or not item.is_sold_at(branch_id):
        name = item.name if item else line.menu_item.name
        raise OrderValidationError(
            OrderValidationError.ITEM_UNAVAILABLE,
            f"'{name}' is no longer available",
            menu_item_id=line.menu_item.id,
        )

    catalog_toppings: Dict[str, Topping] = {t.id: t for t in snapshot.toppings}
    toppings = []
    for chosen in line.selected_toppings:
        current = catalog_toppings.get(chosen.id)
        if current is None:
            raise OrderValidationError(
                OrderValidationError.TOPPING_SELECTION,
                f"Topping '{chosen.name or chosen.id}' is no longer offered",
                menu_item_id=item.id,
            )
        toppings.append(current.model_copy())

    validate_topping_selection(item, toppings, snapshot)

    return OrderItem(
        menu_item_id=item.id,
        quantity=line.quantity,
        price=unit_price(item, toppings),
        name=item.name,
        selected_toppings=toppings or None,
        note=clean_note(line.note),
    )


def build_order(
    cart: Cart,
    branch_id: Optional[str],
    table_number: Union[str, int, None],
    payment_method: PaymentMethod,
    snapshot: StoreSnapshot,
    timestamp: Optional[int] = None,
) -> Order:
    """Validate ``cart`` and freeze it into a NEW order.

    Checks run in order and the first failure wins: empty cart, missing
    branch, missing table, then each line's availability and topping bounds.
    Names, prices and toppings are copied from the current catalog.
    """
    if cart.is_empty:
        raise OrderValidationError(OrderValidationError.EMPTY_CART, "Your cart is empty")
    if not branch_id:
        raise OrderValidationError(OrderValidationError.NO_BRANCH, "Please select a branch")
    table = parse_table_number(table_number)
    if table is None:
        raise OrderValidationError(OrderValidationError.NO_TABLE, "Please check in at your table first")

    items = [_freeze_line(line, snapshot, branch_id) for line in cart.lines]
    timestamp = timestamp if timestamp is not None else now_ms()

    return Order(
        id=new_order_id(timestamp),
        branch_id=branch_id,
        table_number=table,
        items=items,
        total=order_total(items),
        status=OrderStatus.NEW,
        timestamp=timestamp,
        payment_method=payment_method,
        note=clean_note(cart.note),
    )


def write_orders(store: DocumentStore, orders: List[Order], unreadable: Sequence[Any] = ()) -> None:
    """Replace the whole order collection.

    ``unreadable`` entries are appended unchanged so orders the sanitizer
    could not read are never deleted by an unrelated write.
    """
    store.replace_subtree(ORDERS_PATH, [o.to_store() for o in orders] + list(unreadable))


class OrderService:
    """Submits orders against one store handle."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def submit_order(
        self,
        snapshot: StoreSnapshot,
        cart: Cart,
        branch_id: Optional[str],
        table_number: Union[str, int, None],
        payment_method: PaymentMethod,
        timestamp: Optional[int] = None,
    ) -> Order:
        """Build the order and prepend it to ``snapshot.orders`` in one write."""
        order = build_order(cart, branch_id, table_number, payment_method, snapshot, timestamp)
        write_orders(self.store, [order] + list(snapshot.orders), snapshot.unreadable_orders)
        logger.info(
            f"Order {order.id} placed: branch={order.branch_id} table={order.table_number} "
            f"items={order.item_count} total={order.total}"
        )
        return order
