"""
Order reports
Kitchen ticket queue with urgency bands and the admin daily order summary.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from tableorder.schemas.order import Order, OrderStatus
from tableorder.schemas.snapshot import StoreSnapshot

logger = logging.getLogger(__name__)


class Urgency(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    OVERDUE = "overdue"


def urgency_for(elapsed_seconds: float, warning_after: int = 300, overdue_after: int = 600) -> Urgency:
    if elapsed_seconds <= warning_after:
        return Urgency.NORMAL
    if elapsed_seconds <= overdue_after:
        return Urgency.WARNING
    return Urgency.OVERDUE


@dataclass(frozen=True)
class KitchenTicket:
    order: Order
    elapsed_seconds: int
    urgency: Urgency

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order": self.order.to_store(),
            "elapsed_seconds": self.elapsed_seconds,
            "urgency": self.urgency.value,
        }


def kitchen_queue(snapshot: StoreSnapshot, now_ms: int, branch_id: Optional[str] = None,
                  warning_after: int = 300, overdue_after: int = 600) -> List[KitchenTicket]:
    """NEW orders, oldest first."""
    orders = [o for o in snapshot.orders
              if o.status == OrderStatus.NEW and (branch_id is None or o.branch_id == branch_id)]
    orders.sort(key=lambda o: o.timestamp)

    tickets = []
    for order in orders:
        elapsed = max(0, (now_ms - order.timestamp) // 1000)
        tickets.append(KitchenTicket(order, elapsed, urgency_for(elapsed, warning_after, overdue_after)))
    return tickets


def order_day(order: Order, tz: ZoneInfo) -> date:
    return datetime.fromtimestamp(order.timestamp / 1000, tz=timezone.utc).astimezone(tz).date()


@dataclass
class DailySummary:
    day: date
    orders: List[Order]
    revenue: float

    @property
    def order_count(self) -> int:
        return len(self.orders)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.day.isoformat(),
            "order_count": self.order_count,
            "revenue": self.revenue,
            "orders": [o.to_store() for o in self.orders],
        }


def daily_summary(snapshot: StoreSnapshot, day: date, tz_name: str,
                  branch_id: Optional[str] = None, status: Optional[OrderStatus] = None) -> DailySummary:
    """Orders of one calendar day, newest first; revenue ignores cancelled orders."""
    tz = ZoneInfo(tz_name)
    orders = [
        o for o in snapshot.orders
        if order_day(o, tz) == day
        and (branch_id is None or o.branch_id == branch_id)
        and (status is None or o.status == status)
    ]
    orders.sort(key=lambda o: o.timestamp, reverse=True)
    revenue = sum(o.total for o in orders if o.status != OrderStatus.CANCELLED)
    return DailySummary(day=day, orders=orders, revenue=revenue)


def today(tz_name: str) -> date:
    return datetime.now(ZoneInfo(tz_name)).date()
