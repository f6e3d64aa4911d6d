"""Pydantic schemas for the store document and the client-local cart."""

from tableorder.schemas.catalog import (
    Admin,
    Branch,
    Category,
    KitchenSettings,
    MenuItem,
    PaperSize,
    PrinterSettings,
    SavedSound,
    Topping,
    ToppingGroup,
)
from tableorder.schemas.order import (
    Cart,
    CartLine,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
)
from tableorder.schemas.snapshot import StoreSnapshot

__all__ = [
    "Admin",
    "Branch",
    "Cart",
    "CartLine",
    "Category",
    "KitchenSettings",
    "MenuItem",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaperSize",
    "PaymentMethod",
    "PrinterSettings",
    "SavedSound",
    "StoreSnapshot",
    "Topping",
    "ToppingGroup",
]
