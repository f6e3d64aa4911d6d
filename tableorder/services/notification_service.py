"""Server-side order notifications.

Customers may register a device token when they submit an order; the first
time that order is seen moving NEW -> COMPLETED an FCM push is sent and the
token is forgotten, as it is when the order is paid or cancelled first. Newly
arrived orders are announced on the branch's kitchen topic.
"""

import logging
import threading
from typing import Any, Awaitable, Callable, Dict, List, Optional

from tableorder.schemas.order import OrderStatus
from tableorder.schemas.snapshot import StoreSnapshot
from tableorder.services.firebase_service import FirebasePushService
from tableorder.services.sync_service import diff_orders

logger = logging.getLogger(__name__)

Dispatch = Callable[[Awaitable[Any]], Any]

# Orders in these statuses will never become ready
FINAL_STATUSES = frozenset({OrderStatus.PAID, OrderStatus.CANCELLED})


class OrderReadyNotifier:
    """Turns snapshot transitions into push notifications."""

    def __init__(self, push: FirebasePushService, dispatch: Dispatch):
        self.push = push
        self._dispatch = dispatch
        self._tokens: Dict[str, str] = {}
        self._previous = None
        self._lock = threading.Lock()

    def register(self, order_id: str, device_token: Optional[str]) -> None:
        if not device_token:
            return
        with self._lock:
            self._tokens[order_id] = device_token
        logger.debug(f"Registered device token for order {order_id}")

    @property
    def registered(self) -> List[str]:
        with self._lock:
            return list(self._tokens)

    def handle_snapshot(self, snapshot: StoreSnapshot) -> List[str]:
        """Dispatch pushes for this snapshot; returns the ids that were notified."""
        with self._lock:
            previous, self._previous = self._previous, snapshot.orders
            if previous is None:
                return []
            transitions = diff_orders(previous, snapshot.orders)
            ready = []
            for t in transitions:
                if t.previous == OrderStatus.NEW and t.current == OrderStatus.COMPLETED:
                    token = self._tokens.pop(t.order_id, None)
                    if token:
                        ready.append((snapshot.order(t.order_id), token))
                elif t.current in FINAL_STATUSES and self._tokens.pop(t.order_id, None):
                    logger.debug(f"Dropped device token for order {t.order_id} ({t.current.value})")
            arrived = [snapshot.order(t.order_id) for t in transitions
                       if t.previous is None and t.current == OrderStatus.NEW]

        for order, token in ready:
            self._dispatch(self.push.send_order_ready(token, order.id, order.table_number))
        if self.push.enabled:
            for order in arrived:
                self._dispatch(self.push.send_new_order(order.branch_id, order.id, order.table_number))
        return [order.id for order, _ in ready]
