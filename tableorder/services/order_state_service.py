"""Order state machine, status changes and admin order editing.

    NEW --> COMPLETED --> PAID
     |          |
     +----------+--> CANCELLED

PAID and CANCELLED are terminal. Cancelling is destructive and always goes
through the confirmation gate.

Like submission, every change is persisted by mapping the one order by id in
the caller's current order list and writing the whole list back, so two
operators acting on different orders from stale snapshots can overwrite each
other's changes.
"""

import logging
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple, Union

from tableorder.core.errors import (
    ConfirmationRequiredError,
    InvalidTransitionError,
    OrderNotEditableError,
    OrderNotFoundError,
    OrderValidationError,
    TransitionNotPermittedError,
)
from tableorder.core.rbac import ClientRole
from tableorder.db.store import DocumentStore
from tableorder.schemas.catalog import MenuItem
from tableorder.schemas.order import Order, OrderItem, OrderStatus
from tableorder.schemas.snapshot import StoreSnapshot
from tableorder.services.confirmation_service import ConfirmationGate, ConfirmationRequest
from tableorder.services.order_service import clean_note, parse_table_number, write_orders
from tableorder.services.pricing_service import order_total

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[Tuple[OrderStatus, OrderStatus], FrozenSet[ClientRole]] = {
    (OrderStatus.NEW, OrderStatus.COMPLETED): frozenset({ClientRole.KITCHEN, ClientRole.ADMIN}),
    (OrderStatus.COMPLETED, OrderStatus.PAID): frozenset({ClientRole.ADMIN}),
    (OrderStatus.NEW, OrderStatus.CANCELLED): frozenset({ClientRole.ADMIN}),
    (OrderStatus.COMPLETED, OrderStatus.CANCELLED): frozenset({ClientRole.ADMIN}),
}

CONFIRMATION_REQUIRED = frozenset({OrderStatus.CANCELLED})
TERMINAL_STATUSES = frozenset({OrderStatus.PAID, OrderStatus.CANCELLED})
EDITABLE_STATUSES = frozenset({OrderStatus.NEW, OrderStatus.COMPLETED})


def allowed_targets(status: OrderStatus, role: ClientRole) -> List[OrderStatus]:
    """Statuses ``role`` may move an order in ``status`` to."""
    return [target for (current, target), roles in ALLOWED_TRANSITIONS.items()
            if current == status and role in roles]


def transition(order: Order, target: OrderStatus, role: ClientRole) -> Order:
    """Return a copy of ``order`` in ``target`` status, or raise."""
    roles = ALLOWED_TRANSITIONS.get((order.status, target))
    if roles is None:
        raise InvalidTransitionError(order.id, order.status.value, target.value)
    if role not in roles:
        raise TransitionNotPermittedError(role.value, order.status.value, target.value)
    return order.model_copy(update={"status": target}, deep=True)


# ===== Editing (admin) =====

def _ensure_editable(order: Order) -> None:
    if order.status not in EDITABLE_STATUSES:
        raise OrderNotEditableError(order.id, order.status.value)


def _with_items(order: Order, items: List[OrderItem], **changes) -> Order:
    return order.model_copy(update={"items": items, "total": order_total(items), **changes}, deep=True)


def change_item_quantity(order: Order, index: int, delta: int) -> Order:
    """Adjust one line's quantity; the line is removed at zero or below."""
    _ensure_editable(order)
    items = [item.model_copy() for item in order.items]
    if not 0 <= index < len(items):
        raise IndexError(f"Order {order.id} has no line {index}")
    quantity = items[index].quantity + delta
    if quantity <= 0:
        del items[index]
    else:
        items[index] = items[index].model_copy(update={"quantity": quantity})
    return _with_items(order, items)


def set_item_note(order: Order, index: int, note: Optional[str]) -> Order:
    _ensure_editable(order)
    items = [item.model_copy() for item in order.items]
    if not 0 <= index < len(items):
        raise IndexError(f"Order {order.id} has no line {index}")
    items[index] = items[index].model_copy(update={"note": clean_note(note)})
    return _with_items(order, items)


def add_menu_item(order: Order, item: MenuItem) -> Order:
    """Add one unit of ``item`` at its current price.

    Merges into an existing line only when that line has no note and no
    toppings.
    """
    _ensure_editable(order)
    items = [i.model_copy() for i in order.items]
    for idx, line in enumerate(items):
        if line.menu_item_id == item.id and not line.note and not line.selected_toppings:
            items[idx] = line.model_copy(update={"quantity": line.quantity + 1})
            return _with_items(order, items)

    items.append(OrderItem(menu_item_id=item.id, name=item.name, price=item.price, quantity=1))
    return _with_items(order, items)


def set_table_number(order: Order, table_number: Union[str, int, None]) -> Order:
    _ensure_editable(order)
    table = parse_table_number(table_number)
    if table is None:
        raise OrderValidationError(OrderValidationError.NO_TABLE, "Table number must be a positive number")
    return _with_items(order, list(order.items), table_number=table)


class OrderStateService:
    """Applies status changes and edits against the latest snapshot."""

    def __init__(self, store: DocumentStore, snapshot_provider: Callable[[], StoreSnapshot],
                 gate: Optional[ConfirmationGate] = None):
        self.store = store
        self._snapshot = snapshot_provider
        self.gate = gate or ConfirmationGate()

    def _find(self, snapshot: StoreSnapshot, order_id: str) -> Order:
        order = snapshot.order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def _replace(self, snapshot: StoreSnapshot, updated: Order) -> None:
        write_orders(self.store, [updated if o.id == updated.id else o for o in snapshot.orders],
                     snapshot.unreadable_orders)

    def _apply(self, order_id: str, target: OrderStatus, role: ClientRole) -> Order:
        snapshot = self._snapshot()
        order = self._find(snapshot, order_id)
        updated = transition(order, target, role)
        self._replace(snapshot, updated)
        logger.info(f"Order {order_id}: {order.status.value} -> {target.value} by {role.value}")
        return updated

    def change_status(self, order_id: str, target: OrderStatus, role: ClientRole) -> Order:
        """Apply a non-destructive transition immediately."""
        if target in CONFIRMATION_REQUIRED:
            raise ConfirmationRequiredError(f"Moving an order to {target.value} requires confirmation")
        return self._apply(order_id, target, role)

    def request_status_change(self, order_id: str, target: OrderStatus,
                              role: ClientRole) -> Union[Order, ConfirmationRequest]:
        """Apply the transition, or return a confirmation request for destructive ones.

        The edge and role are validated up front so an impossible request never
        reaches the user as a confirmation dialog.
        """
        if target not in CONFIRMATION_REQUIRED:
            return self._apply(order_id, target, role)

        order = self._find(self._snapshot(), order_id)
        transition(order, target, role)
        return self.gate.request(
            action="cancel_order",
            title="Cancel order",
            description=f"Cancel order #{order.id[:6]} for table {order.table_number}?",
            on_confirm=lambda: self._apply(order_id, target, role),
            subject_id=order_id,
            requested_by=role,
        )

    def save_edit(self, edited: Order, role: ClientRole) -> Order:
        """Write an edited order back; the total is recomputed, never trusted."""
        if role != ClientRole.ADMIN:
            raise TransitionNotPermittedError(role.value, edited.status.value, edited.status.value)
        snapshot = self._snapshot()
        stored = self._find(snapshot, edited.id)
        _ensure_editable(stored)
        if edited.status != stored.status:
            raise InvalidTransitionError(stored.id, stored.status.value, edited.status.value)
        if not edited.items:
            raise OrderValidationError(OrderValidationError.EMPTY_CART, "An order needs at least one item")

        # Identity fields always come from the stored order
        updated = _with_items(edited, list(edited.items), branch_id=stored.branch_id, timestamp=stored.timestamp)
        self._replace(snapshot, updated)
        logger.info(f"Order {updated.id} edited: items={updated.item_count} total={updated.total}")
        return updated
