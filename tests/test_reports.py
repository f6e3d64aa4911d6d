"""Tests for the kitchen queue and daily order summary."""

from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest

from tableorder.schemas.order import Order, OrderItem, OrderStatus
from tableorder.schemas.snapshot import StoreSnapshot
from tableorder.services.order_report_service import Urgency, daily_summary, kitchen_queue, urgency_for

TZ = "Asia/Ho_Chi_Minh"


def _ms(year, month, day, hour, minute=0):
    return int(datetime(year, month, day, hour, minute, tzinfo=ZoneInfo(TZ)).timestamp() * 1000)


def _order(order_id, timestamp, status=OrderStatus.NEW, branch_id="cn1", total=100):
    return Order(
        id=order_id, branch_id=branch_id, table_number=1, status=status, timestamp=timestamp, total=total,
        items=[OrderItem(menu_item_id="m1", quantity=1, price=total)],
    )


class TestUrgency:
    @pytest.mark.parametrize("elapsed,expected", [
        (0, Urgency.NORMAL), (300, Urgency.NORMAL), (301, Urgency.WARNING),
        (600, Urgency.WARNING), (601, Urgency.OVERDUE),
    ])
    def test_bands(self, elapsed, expected):
        assert urgency_for(elapsed) == expected


class TestKitchenQueue:
    def test_new_orders_oldest_first_per_branch(self):
        now = _ms(2024, 5, 1, 12)
        snapshot = StoreSnapshot(orders=[
            _order("b", now - 60_000),
            _order("a", now - 400_000),
            _order("done", now - 900_000, OrderStatus.COMPLETED),
            _order("other", now - 10_000, branch_id="cn2"),
        ])
        tickets = kitchen_queue(snapshot, now, branch_id="cn1")
        assert [t.order.id for t in tickets] == ["a", "b"]
        assert [t.urgency for t in tickets] == [Urgency.WARNING, Urgency.NORMAL]
        assert tickets[0].elapsed_seconds == 400

    def test_all_branches(self):
        now = _ms(2024, 5, 1, 12)
        snapshot = StoreSnapshot(orders=[_order("a", now), _order("b", now, branch_id="cn2")])
        assert len(kitchen_queue(snapshot, now)) == 2


class TestDailySummary:
    def test_local_calendar_day_and_revenue(self):
        snapshot = StoreSnapshot(orders=[
            _order("early", _ms(2024, 5, 1, 0, 30), OrderStatus.PAID, total=100),
            _order("late", _ms(2024, 5, 1, 23, 30), OrderStatus.COMPLETED, total=200),
            _order("cancelled", _ms(2024, 5, 1, 12), OrderStatus.CANCELLED, total=1000),
            _order("next_day", _ms(2024, 5, 2, 0, 10), total=50),
        ])
        summary = daily_summary(snapshot, date(2024, 5, 1), TZ)
        assert [o.id for o in summary.orders] == ["late", "cancelled", "early"]
        assert summary.order_count == 3
        assert summary.revenue == 300

    def test_filters(self):
        snapshot = StoreSnapshot(orders=[
            _order("a", _ms(2024, 5, 1, 10), OrderStatus.PAID),
            _order("b", _ms(2024, 5, 1, 11), branch_id="cn2"),
        ])
        assert [o.id for o in daily_summary(snapshot, date(2024, 5, 1), TZ, branch_id="cn2").orders] == ["b"]
        assert [o.id for o in daily_summary(snapshot, date(2024, 5, 1), TZ,
                                            status=OrderStatus.PAID).orders] == ["a"]
