"""Order and cart schemas."""

from __future__ import annotations

from enum import Enum
from typing import List, Optional
from uuid import uuid4

from pydantic import Field

from tableorder.schemas.catalog import MenuItem, Price, StoreModel, Topping


class OrderStatus(str, Enum):
    NEW = "NEW"
    COMPLETED = "COMPLETED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    TRANSFER = "TRANSFER"


class OrderItem(StoreModel):
    """One order line, frozen at submission time.

    ``price`` is the unit price including the selected toppings; later menu
    edits never change it.
    """
    menu_item_id: str
    quantity: int = Field(..., gt=0)
    price: Price = 0
    name: str = ""
    selected_toppings: Optional[List[Topping]] = None
    note: Optional[str] = None


class Order(StoreModel):
    id: str
    branch_id: str
    table_number: int = Field(..., gt=0)
    items: List[OrderItem] = Field(default_factory=list)
    total: Price = 0
    status: OrderStatus = OrderStatus.NEW
    timestamp: int = Field(0, ge=0, description="Creation time, epoch milliseconds")
    payment_method: PaymentMethod = PaymentMethod.CASH
    note: Optional[str] = None

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)


class CartLine(StoreModel):
    """A client-local cart entry. ``menu_item`` is the catalog entry at add time."""
    instance_id: str = Field(default_factory=lambda: uuid4().hex)
    menu_item: MenuItem
    quantity: int = Field(1, gt=0)
    note: Optional[str] = None
    selected_toppings: List[Topping] = Field(default_factory=list)

    @property
    def topping_ids(self) -> tuple:
        return tuple(sorted(t.id for t in self.selected_toppings))


class Cart(StoreModel):
    """Pending order, never replicated until submission."""
    branch_id: Optional[str] = None
    table_number: Optional[str] = None
    lines: List[CartLine] = Field(default_factory=list)
    note: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)
