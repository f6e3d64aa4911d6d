"""In-process view of one client screen (customer, kitchen or admin).

A ``ClientSession`` owns what a browser screen keeps locally: the cart,
the session markers and a reconciler fed by store pushes. Every write it
performs is computed from its own latest snapshot, exactly as a browser tab
would.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Union

from tableorder.core.config import Settings, settings as default_settings
from tableorder.core.errors import OrderNotFoundError, QRPayloadError
from tableorder.core.rbac import STAFF_ROLES, ClientRole
from tableorder.db.store import DocumentStore
from tableorder.schemas.catalog import MenuItem
from tableorder.schemas.order import Cart, CartLine, Order, OrderStatus, PaymentMethod
from tableorder.schemas.snapshot import StoreSnapshot
from tableorder.services import order_service, order_state_service, seed_service
from tableorder.services.auth_service import authenticate
from tableorder.services.confirmation_service import (
    ConfirmationGate,
    ConfirmationOutcome,
    ConfirmationRequest,
    ConfirmationResult,
)
from tableorder.services.geo_checkin_service import CheckInResult, GeoCheckInService, GeolocationProvider
from tableorder.services.order_service import OrderService
from tableorder.services.order_state_service import OrderStateService
from tableorder.services.pricing_service import cart_total
from tableorder.services.sync_service import SyncReconciler
from tableorder.services.table_qr_service import build_checkin_payload, consume_table_link

logger = logging.getLogger(__name__)


@dataclass
class SessionMarkers:
    """Client-local flags that survive a refresh but are never replicated."""
    authenticated: bool = False
    my_order_id: Optional[str] = None
    table_hint: Optional[str] = None


class ClientSession:
    def __init__(
        self,
        store: DocumentStore,
        role: ClientRole = ClientRole.CUSTOMER,
        config: Settings = default_settings,
        gate: Optional[ConfirmationGate] = None,
        on_order_ready: Optional[Callable[[Order], None]] = None,
        on_new_orders: Optional[Callable[[List[Order]], None]] = None,
    ):
        self.store = store
        self.role = role
        self.config = config
        self.cart = Cart()
        self.markers = SessionMarkers()
        self.gate = gate or ConfirmationGate()
        self.ready_notifications: List[Order] = []
        self.new_order_alerts: List[List[Order]] = []
        self._on_order_ready = on_order_ready
        self._on_new_orders = on_new_orders

        self.reconciler = SyncReconciler(
            store,
            role=role,
            tracked_order_id=lambda: self.markers.my_order_id,
            on_order_ready=self._order_ready,
            on_new_orders=self._new_orders,
            default_allowed_distance=config.default_allowed_distance_m,
        )
        self.orders = OrderService(store)
        self.states = OrderStateService(store, lambda: self.snapshot, self.gate)
        self.checkin_service = GeoCheckInService(
            timeout_seconds=config.geolocation_timeout_seconds,
            tolerance=config.branch_match_tolerance_deg,
        )

    # ----- lifecycle -----

    def open(self) -> "ClientSession":
        self.reconciler.start()
        return self

    def close(self) -> None:
        self.reconciler.stop()

    def __enter__(self) -> "ClientSession":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def snapshot(self) -> StoreSnapshot:
        return self.reconciler.snapshot

    def _order_ready(self, order: Order, snapshot: StoreSnapshot) -> None:
        self.ready_notifications.append(order)
        if self._on_order_ready is not None:
            self._on_order_ready(order)

    def _new_orders(self, orders: List[Order], snapshot: StoreSnapshot) -> None:
        self.new_order_alerts.append(orders)
        if self._on_new_orders is not None:
            self._on_new_orders(orders)

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES and self.markers.authenticated

    def _require_staff(self) -> None:
        if not self.is_staff:
            raise PermissionError(f"A logged-in staff session is required (role '{self.role.value}')")

    # ----- branch / table -----

    def select_branch(self, branch_id: str) -> None:
        """Pick a branch from the menu screen; a different branch drops the check-in."""
        if branch_id != self.cart.branch_id:
            self.cart.table_number = None
        self.cart.branch_id = branch_id

    def consume_table_link(self, url: str) -> Optional[str]:
        """Apply a table URL once; returns the URL without its query.

        Customers only get the branch selected and the table remembered as a
        hint, since the table is bound by check-in. Staff bind it directly.
        """
        link = consume_table_link(url, self.snapshot.branches or None)
        if link is None:
            return None
        self.select_branch(link.branch_id)
        if self.role in STAFF_ROLES:
            self.cart.table_number = link.table
        else:
            self.markers.table_hint = link.table
        return link.stripped_url

    async def check_in(self, payload: Optional[str], provider: GeolocationProvider) -> CheckInResult:
        """Bind the cart to a table after the geofence check.

        Without a scanned ``payload`` the table remembered from a table link is
        used, with the selected branch's coordinates.
        """
        if payload is None:
            branch = self.snapshot.branch(self.cart.branch_id) if self.cart.branch_id else None
            if branch is None or not self.markers.table_hint:
                raise QRPayloadError("", "scan the table QR code or open a table link first")
            payload = build_checkin_payload(branch, self.markers.table_hint)
        result = await self.checkin_service.check_in(self.cart, self.snapshot.branches, payload, provider)
        self.markers.table_hint = None
        return result

    # ----- cart -----

    def add_to_cart(self, menu_item_id: str, quantity: int = 1,
                    topping_ids: Optional[List[str]] = None, note: Optional[str] = None) -> CartLine:
        item = self.snapshot.menu_item(menu_item_id)
        if item is None:
            raise KeyError(menu_item_id)
        toppings = order_service.resolve_toppings(self.snapshot, item, topping_ids or [])
        return order_service.add_to_cart(self.cart, item, quantity, toppings, note)

    def decrement_line(self, instance_id: str) -> Optional[CartLine]:
        return order_service.decrement_line(self.cart, instance_id)

    def remove_line(self, instance_id: str) -> None:
        order_service.remove_line(self.cart, instance_id)

    def set_line_note(self, instance_id: str, note: Optional[str]) -> None:
        order_service.set_line_note(self.cart, instance_id, note)

    def clear_cart(self) -> None:
        order_service.clear_cart(self.cart)

    def cart_total(self):
        return cart_total(self.cart)

    def submit_order(self, payment_method: PaymentMethod = PaymentMethod.CASH,
                     timestamp: Optional[int] = None) -> Order:
        """Submit the cart; on failure the cart is left untouched."""
        order = self.orders.submit_order(
            self.snapshot, self.cart, self.cart.branch_id, self.cart.table_number, payment_method, timestamp,
        )
        self.markers.my_order_id = order.id
        self.clear_cart()
        return order

    def acknowledge_ready(self) -> None:
        """Dismiss the ready notification and forget the tracked order."""
        self.markers.my_order_id = None
        self.ready_notifications.clear()

    # ----- staff -----

    def login(self, username: str, password: str) -> None:
        authenticate(self.store, username, password, self.config)
        self.markers.authenticated = True

    def logout(self) -> None:
        self.markers.authenticated = False

    def complete_order(self, order_id: str) -> Order:
        self._require_staff()
        return self.states.change_status(order_id, OrderStatus.COMPLETED, self.role)

    def mark_paid(self, order_id: str) -> Order:
        self._require_staff()
        return self.states.change_status(order_id, OrderStatus.PAID, self.role)

    def request_cancel(self, order_id: str) -> ConfirmationRequest:
        self._require_staff()
        return self.states.request_status_change(order_id, OrderStatus.CANCELLED, self.role)

    def request_reset(self) -> ConfirmationRequest:
        self._require_staff()
        if self.role != ClientRole.ADMIN:
            raise PermissionError("Only admins can reset data")
        return seed_service.request_reset(self.store, self.gate, self.role)

    def resolve_confirmation(self, request: Union[ConfirmationRequest, str], confirmed: bool) -> ConfirmationOutcome:
        request_id = request.id if isinstance(request, ConfirmationRequest) else request
        return self.gate.resolve(ConfirmationResult(request_id=request_id, confirmed=confirmed, role=self.role))

    def edit(self, order_id: str, mutate: Callable[[Order], Order]) -> Order:
        """Apply ``mutate`` to the latest copy of an order and save it."""
        self._require_staff()
        order = self.snapshot.order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return self.states.save_edit(mutate(order), self.role)

    def add_item_to_order(self, order_id: str, menu_item_id: str) -> Order:
        item: Optional[MenuItem] = self.snapshot.menu_item(menu_item_id)
        if item is None:
            raise KeyError(menu_item_id)
        return self.edit(order_id, lambda o: order_state_service.add_menu_item(o, item))

