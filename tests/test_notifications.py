"""Tests for server-side push notifications."""

import asyncio

from tableorder.services.notification_service import OrderReadyNotifier
from tableorder.services.sync_service import sanitize_document


class FakePush:
    def __init__(self, enabled=True):
        self.enabled = enabled
        self.sent = []

    async def send_order_ready(self, token, order_id, table_number):
        self.sent.append(("ready", token, order_id))
        return True

    async def send_new_order(self, branch_id, order_id, table_number):
        self.sent.append(("new", f"kitchen-{branch_id}", order_id))
        return True


def _snapshot(*orders):
    return sanitize_document({"orders": [
        {"id": order_id, "branchId": "cn1", "tableNumber": 1, "status": status, "timestamp": 1,
         "items": [{"menuItemId": "m1", "quantity": 1, "price": 45000}]}
        for order_id, status in orders
    ]})


class TestOrderReadyNotifier:
    def test_ready_push_sent_once_per_registered_order(self):
        push = FakePush(enabled=False)
        notifier = OrderReadyNotifier(push, asyncio.run)
        notifier.handle_snapshot(_snapshot(("o1", "NEW"), ("o2", "NEW")))
        notifier.register("o1", "token-1")
        notifier.register("o2", None)

        assert notifier.handle_snapshot(_snapshot(("o1", "COMPLETED"), ("o2", "COMPLETED"))) == ["o1"]
        notifier.handle_snapshot(_snapshot(("o1", "NEW"), ("o2", "COMPLETED")))
        assert notifier.handle_snapshot(_snapshot(("o1", "COMPLETED"), ("o2", "COMPLETED"))) == []

        assert push.sent == [("ready", "token-1", "o1")]
        assert notifier.registered == []

    def test_new_orders_go_to_kitchen_topic(self):
        push = FakePush()
        notifier = OrderReadyNotifier(push, asyncio.run)
        notifier.handle_snapshot(_snapshot())
        notifier.handle_snapshot(_snapshot(("o1", "NEW")))
        assert push.sent == [("new", "kitchen-cn1", "o1")]

    def test_first_snapshot_is_baseline(self):
        push = FakePush()
        notifier = OrderReadyNotifier(push, asyncio.run)
        notifier.register("o1", "token-1")
        assert notifier.handle_snapshot(_snapshot(("o1", "COMPLETED"))) == []
        assert push.sent == []

    def test_token_dropped_when_order_cancelled(self):
        push = FakePush(enabled=False)
        notifier = OrderReadyNotifier(push, asyncio.run)
        notifier.handle_snapshot(_snapshot(("o1", "NEW"), ("o2", "COMPLETED")))
        notifier.register("o1", "token-1")
        notifier.register("o2", "token-2")

        notifier.handle_snapshot(_snapshot(("o1", "CANCELLED"), ("o2", "PAID")))
        assert notifier.registered == []
        assert push.sent == []
