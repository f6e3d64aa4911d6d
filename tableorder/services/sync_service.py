"""
Sync Reconciler
Turns raw store pushes into typed, fully-defaulted snapshots and detects
order status transitions between consecutive pushes.

The replicated document is heterogeneous: a list may arrive as a dense
array (with null holes) or as a sparse keyed map depending on which indices
were ever written, and any field may be missing. Everything is normalized
here, at the ingestion edge, so no consumer ever sees a raw shape.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Type

from pydantic import ValidationError

from tableorder.core.rbac import ClientRole
from tableorder.db.store import DocumentStore
from tableorder.schemas.catalog import (
    DEFAULT_ALLOWED_DISTANCE_M,
    Admin,
    Branch,
    Category,
    KitchenSettings,
    MenuItem,
    PrinterSettings,
    StoreModel,
    Topping,
    ToppingGroup,
)
from tableorder.schemas.order import Order, OrderStatus, PaymentMethod
from tableorder.schemas.snapshot import DEFAULT_THEME_COLOR, StoreSnapshot

logger = logging.getLogger(__name__)

# Labels written by earlier deployments, mapped to canonical values
LEGACY_STATUS_LABELS = {
    "Mới": OrderStatus.NEW,
    "Đã hoàn thành": OrderStatus.COMPLETED,
    "Đã thanh toán": OrderStatus.PAID,
    "Đã hủy": OrderStatus.CANCELLED,
}
LEGACY_PAYMENT_LABELS = {
    "Tiền mặt": PaymentMethod.CASH,
    "Chuyển khoản": PaymentMethod.TRANSFER,
}


# ===== Shape normalization =====

def _key_order(item):
    key = str(item[0])
    if key.isdigit():
        return (0, int(key))
    return (1, 0)


def to_ordered_list(raw: Any) -> List[Any]:
    """Normalize a replicated collection into a list.

    - ``None`` becomes ``[]``.
    - Dense arrays keep their order; null holes are dropped.
    - Keyed maps: integer-like keys ascending first, then the remaining keys
      in their original order (``sorted`` is stable).
    - Any other scalar is treated as an empty collection.
    """
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        return [item for item in raw if item is not None]
    if isinstance(raw, dict):
        return [value for _, value in sorted(raw.items(), key=_key_order) if value is not None]
    return []


def _present(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Fields that are actually set (null means absent)."""
    return {k: v for k, v in raw.items() if v is not None}


# ===== Per-entity default fillers =====

def fill_printer_settings_defaults(raw: Optional[Dict[str, Any]], base: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    filled = PrinterSettings().to_store()
    filled.update(_present(base or {}))
    filled.update(_present(raw or {}))
    return filled


def fill_branch_defaults(
    raw: Dict[str, Any],
    legacy_printer_settings: Optional[Dict[str, Any]] = None,
    default_allowed_distance: float = DEFAULT_ALLOWED_DISTANCE_M,
) -> Dict[str, Any]:
    present = _present(raw)
    printer = present.get("printerSettings")
    filled = {
        "name": "",
        "allowedDistance": default_allowed_distance,
        "tableCount": 0,
        **present,
    }
    filled["printerSettings"] = fill_printer_settings_defaults(
        printer if isinstance(printer, dict) else None, legacy_printer_settings
    )
    return filled


def fill_category_defaults(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {"name": "", **_present(raw)}


def fill_topping_defaults(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {"name": "", "price": 0, **_present(raw)}


def fill_topping_group_defaults(raw: Dict[str, Any]) -> Dict[str, Any]:
    present = _present(raw)
    topping_ids = [str(t) for t in to_ordered_list(present.get("toppingIds"))]
    min_selection = present.get("minSelection", 0)
    filled = {
        "name": "",
        "minSelection": min_selection,
        # Missing upper bound: any number of the group's toppings
        "maxSelection": max(len(topping_ids), min_selection) if isinstance(min_selection, int) else len(topping_ids),
        **present,
    }
    filled["toppingIds"] = topping_ids
    return filled


def fill_menu_item_defaults(raw: Dict[str, Any]) -> Dict[str, Any]:
    present = _present(raw)
    filled = {
        "categoryId": "",
        "name": "",
        "description": "",
        "price": 0,
        "imageUrl": "",
        "isOutOfStock": False,
        "isFeatured": False,
        **present,
    }
    filled["branchIds"] = [str(b) for b in to_ordered_list(present.get("branchIds"))]
    filled["toppingGroupIds"] = [str(g) for g in to_ordered_list(present.get("toppingGroupIds"))]
    return filled


def normalize_status(value: Any) -> Optional[OrderStatus]:
    if isinstance(value, OrderStatus):
        return value
    if not isinstance(value, str):
        return None
    if value in LEGACY_STATUS_LABELS:
        return LEGACY_STATUS_LABELS[value]
    try:
        return OrderStatus(value.upper())
    except ValueError:
        return None


def normalize_payment_method(value: Any) -> PaymentMethod:
    if isinstance(value, PaymentMethod):
        return value
    if isinstance(value, str):
        if value in LEGACY_PAYMENT_LABELS:
            return LEGACY_PAYMENT_LABELS[value]
        try:
            return PaymentMethod(value.upper())
        except ValueError:
            pass
    return PaymentMethod.CASH


def fill_order_item_defaults(raw: Dict[str, Any]) -> Dict[str, Any]:
    present = _present(raw)
    filled = {"price": 0, "name": "", "quantity": 1, **present}
    if "selectedToppings" in present:
        toppings = [fill_topping_defaults(t) for t in to_ordered_list(present["selectedToppings"]) if isinstance(t, dict)]
        if toppings:
            filled["selectedToppings"] = toppings
        else:
            filled.pop("selectedToppings")
    return filled


def fill_order_defaults(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Fill an order; a missing total is recomputed from its lines."""
    present = _present(raw)
    items = [fill_order_item_defaults(i) for i in to_ordered_list(present.get("items")) if isinstance(i, dict)]
    filled = {"timestamp": 0, **present}
    filled["items"] = items
    filled["status"] = normalize_status(present.get("status", OrderStatus.NEW.value))
    filled["paymentMethod"] = normalize_payment_method(present.get("paymentMethod"))
    if "total" not in present:
        filled["total"] = sum((i.get("price") or 0) * (i.get("quantity") or 0) for i in items)
    return filled


def fill_kitchen_settings_defaults(raw: Any) -> Dict[str, Any]:
    present = _present(raw) if isinstance(raw, dict) else {}
    filled = KitchenSettings().to_store()
    filled.update(present)
    filled["savedSounds"] = [s for s in to_ordered_list(present.get("savedSounds")) if isinstance(s, dict)]
    return filled


# ===== Document sanitization =====

def _collect(raw: Any, filler: Callable[[Dict[str, Any]], Dict[str, Any]],
             model: Type[StoreModel], kind: str, require_id: bool = True,
             rejected: Optional[list] = None) -> list:
    """Validate every entry of a collection; unusable entries go to ``rejected`` as-is."""
    result = []
    for entry in to_ordered_list(raw):
        if not isinstance(entry, dict):
            logger.warning(f"Dropping malformed {kind} entry of type {type(entry).__name__}")
        elif require_id and not entry.get("id"):
            logger.warning(f"Dropping {kind} entry without an id")
        else:
            try:
                result.append(model.model_validate(filler(entry)))
                continue
            except ValidationError as e:
                logger.warning(f"Dropping invalid {kind} '{entry.get('id', '?')}': {e.error_count()} error(s)")
        if rejected is not None:
            rejected.append(entry)
    return result


def sanitize_document(raw: Any, default_allowed_distance: float = DEFAULT_ALLOWED_DISTANCE_M) -> StoreSnapshot:
    """Build a ``StoreSnapshot`` from a raw document. Total and idempotent."""
    doc = raw if isinstance(raw, dict) else {}
    legacy_printer = doc.get("printerSettings") if isinstance(doc.get("printerSettings"), dict) else None

    def branch_filler(entry):
        return fill_branch_defaults(entry, legacy_printer, default_allowed_distance)

    unreadable_orders: list = []
    return StoreSnapshot(
        branches=_collect(doc.get("branches"), branch_filler, Branch, "branch"),
        categories=_collect(doc.get("categories"), fill_category_defaults, Category, "category"),
        menu_items=_collect(doc.get("menuItems"), fill_menu_item_defaults, MenuItem, "menu item"),
        toppings=_collect(doc.get("toppings"), fill_topping_defaults, Topping, "topping"),
        topping_groups=_collect(doc.get("toppingGroups"), fill_topping_group_defaults, ToppingGroup, "topping group"),
        orders=_collect(doc.get("orders"), fill_order_defaults, Order, "order", rejected=unreadable_orders),
        unreadable_orders=unreadable_orders,
        kitchen_settings=KitchenSettings.model_validate(fill_kitchen_settings_defaults(doc.get("kitchenSettings"))),
        logo_url=doc.get("logoUrl") if isinstance(doc.get("logoUrl"), str) else "",
        theme_color=doc.get("themeColor") if isinstance(doc.get("themeColor"), str) else DEFAULT_THEME_COLOR,
        admins=_collect(doc.get("admins"), _present, Admin, "admin", require_id=False),
    )


# ===== Transition detection =====

@dataclass(frozen=True)
class OrderTransition:
    """Status change of one order between two consecutive pushes.

    ``previous`` is None for an order that was not in the previous push.
    """

    order_id: str
    previous: Optional[OrderStatus]
    current: OrderStatus


def diff_orders(previous: Iterable[Order], current: Iterable[Order]) -> List[OrderTransition]:
    before = {o.id: o.status for o in previous}
    transitions = []
    for order in current:
        old = before.get(order.id)
        if old != order.status:
            transitions.append(OrderTransition(order.id, old, order.status))
    return transitions


class SyncReconciler:
    """Keeps one client's typed view of the store current.

    ``tracked_order_id`` returns the customer's own order pointer (or None);
    ``on_order_ready`` fires once when that order moves NEW -> COMPLETED.
    ``on_new_orders`` fires for the kitchen role whenever the number of NEW
    orders grows.
    """

    def __init__(
        self,
        store: DocumentStore,
        role: ClientRole = ClientRole.CUSTOMER,
        tracked_order_id: Optional[Callable[[], Optional[str]]] = None,
        on_order_ready: Optional[Callable[[Order, StoreSnapshot], None]] = None,
        on_new_orders: Optional[Callable[[List[Order], StoreSnapshot], None]] = None,
        default_allowed_distance: float = DEFAULT_ALLOWED_DISTANCE_M,
    ):
        self.store = store
        self.role = role
        self._tracked_order_id = tracked_order_id or (lambda: None)
        self._on_order_ready = on_order_ready
        self._on_new_orders = on_new_orders
        self._default_allowed_distance = default_allowed_distance

        self._lock = threading.RLock()
        self._snapshot = StoreSnapshot()
        self._previous_orders: Optional[List[Order]] = None
        self._notified_ready: set = set()
        self._listeners: List[Callable[[StoreSnapshot], None]] = []
        self._unsubscribe: Optional[Callable[[], None]] = None
        self.version = 0

    # ----- lifecycle -----

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(self.handle_push)
            logger.debug(f"Reconciler for role '{self.role.value}' subscribed")

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    @property
    def is_running(self) -> bool:
        return self._unsubscribe is not None

    @property
    def snapshot(self) -> StoreSnapshot:
        with self._lock:
            return self._snapshot

    def add_listener(self, listener: Callable[[StoreSnapshot], None]) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove

    # ----- push handling -----

    def handle_push(self, document: Dict[str, Any]) -> StoreSnapshot:
        snapshot = sanitize_document(document, self._default_allowed_distance)

        with self._lock:
            previous = self._previous_orders
            self._snapshot = snapshot
            self._previous_orders = snapshot.orders
            self.version += 1
            listeners = list(self._listeners)

            ready = []
            new_orders = []
            if previous is not None:
                transitions = diff_orders(previous, snapshot.orders)
                ready = self._ready_orders(transitions, snapshot)
                if self.role == ClientRole.KITCHEN:
                    new_orders = self._arrived_orders(previous, snapshot)

        for order in ready:
            logger.info(f"Order {order.id} is ready (table {order.table_number})")
            if self._on_order_ready is not None:
                self._on_order_ready(order, snapshot)
        if new_orders:
            logger.info(f"{len(new_orders)} new order(s) arrived for the kitchen")
            if self._on_new_orders is not None:
                self._on_new_orders(new_orders, snapshot)
        for listener in listeners:
            listener(snapshot)
        return snapshot

    def _ready_orders(self, transitions: List[OrderTransition], snapshot: StoreSnapshot) -> List[Order]:
        tracked = self._tracked_order_id()
        if not tracked:
            return []
        ready = []
        for t in transitions:
            if (t.order_id == tracked and t.previous == OrderStatus.NEW
                    and t.current == OrderStatus.COMPLETED and t.order_id not in self._notified_ready):
                self._notified_ready.add(t.order_id)
                ready.append(snapshot.order(t.order_id))
        return ready

    @staticmethod
    def _arrived_orders(previous: List[Order], snapshot: StoreSnapshot) -> List[Order]:
        before = sum(1 for o in previous if o.status == OrderStatus.NEW)
        if snapshot.new_orders_count <= before:
            return []
        known = {o.id for o in previous}
        return [o for o in snapshot.orders if o.status == OrderStatus.NEW and o.id not in known]
