"""Sanitized projection of the whole store document."""

from __future__ import annotations

from typing import Any, List

from pydantic import Field

from tableorder.schemas.catalog import (
    Admin,
    Branch,
    Category,
    KitchenSettings,
    MenuItem,
    StoreModel,
    Topping,
    ToppingGroup,
)
from tableorder.schemas.order import Order, OrderStatus

DEFAULT_THEME_COLOR = "#166534"


class StoreSnapshot(StoreModel):
    """Typed, always-array, always-defaulted view of one store push.

    Rebuilt from scratch on every push; nothing in here outlives a refresh.
    """
    branches: List[Branch] = Field(default_factory=list)
    categories: List[Category] = Field(default_factory=list)
    menu_items: List[MenuItem] = Field(default_factory=list)
    toppings: List[Topping] = Field(default_factory=list)
    topping_groups: List[ToppingGroup] = Field(default_factory=list)
    orders: List[Order] = Field(default_factory=list)
    # Raw order entries that failed validation; written back untouched
    unreadable_orders: List[Any] = Field(default_factory=list, exclude=True)
    kitchen_settings: KitchenSettings = Field(default_factory=KitchenSettings)
    logo_url: str = ""
    theme_color: str = DEFAULT_THEME_COLOR
    admins: List[Admin] = Field(default_factory=list)

    def branch(self, branch_id: str):
        return next((b for b in self.branches if b.id == branch_id), None)

    def menu_item(self, menu_item_id: str):
        return next((m for m in self.menu_items if m.id == menu_item_id), None)

    def order(self, order_id: str):
        return next((o for o in self.orders if o.id == order_id), None)

    def topping_groups_for(self, item: MenuItem) -> List[ToppingGroup]:
        by_id = {g.id: g for g in self.topping_groups}
        return [by_id[gid] for gid in item.topping_group_ids if gid in by_id]

    @property
    def new_orders_count(self) -> int:
        return sum(1 for o in self.orders if o.status == OrderStatus.NEW)
