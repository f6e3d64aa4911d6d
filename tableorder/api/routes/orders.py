"""Order routes: submission, tracking, status changes, editing and the daily list."""

import logging
from datetime import date
from typing import List, Literal, Optional, Union

from fastapi import APIRouter, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from tableorder.api.deps import NotifierDep, OrderServiceDep, SnapshotDep, StateServiceDep
from tableorder.core.config import settings
from tableorder.core.rate_limit import limiter
from tableorder.core.rbac import RequireAdmin, RequireStaff
from tableorder.core.responses import list_response
from tableorder.core.sanitize import sanitize_text
from tableorder.schemas.order import Cart, Order, OrderStatus, PaymentMethod
from tableorder.services import order_service, order_state_service
from tableorder.services.confirmation_service import ConfirmationRequest
from tableorder.services.order_report_service import daily_summary, today

logger = logging.getLogger(__name__)

router = APIRouter()


# ==================== SCHEMAS ====================

class OrderLineRequest(BaseModel):
    menu_item_id: str
    quantity: int = Field(1, ge=1, le=99)
    topping_ids: List[str] = Field(default_factory=list)
    note: Optional[str] = Field(None, max_length=500)

    @field_validator("note")
    @classmethod
    def _sanitize_note(cls, v):
        return sanitize_text(v)


class OrderSubmitRequest(BaseModel):
    branch_id: Optional[str] = None
    table_number: Optional[Union[int, str]] = None
    items: List[OrderLineRequest] = Field(default_factory=list)
    note: Optional[str] = Field(None, max_length=1000)
    payment_method: PaymentMethod = PaymentMethod.CASH
    device_token: Optional[str] = Field(None, max_length=4096, description="FCM token for the ready push")

    @field_validator("note")
    @classmethod
    def _sanitize_note(cls, v):
        return sanitize_text(v)


class StatusChangeRequest(BaseModel):
    status: OrderStatus


class EditOperation(BaseModel):
    op: Literal["change_quantity", "set_note", "add_item", "set_table"]
    index: Optional[int] = Field(None, ge=0)
    delta: int = 0
    note: Optional[str] = Field(None, max_length=500)
    menu_item_id: Optional[str] = None
    table_number: Optional[Union[int, str]] = None

    @field_validator("note")
    @classmethod
    def _sanitize_note(cls, v):
        return sanitize_text(v)


class OrderEditRequest(BaseModel):
    operations: List[EditOperation] = Field(..., min_length=1)


def _cart_from_request(body: OrderSubmitRequest, snapshot) -> Cart:
    cart = Cart(branch_id=body.branch_id, note=body.note or "")
    for line in body.items:
        item = snapshot.menu_item(line.menu_item_id)
        if item is None:
            raise HTTPException(status_code=422, detail=f"Menu item '{line.menu_item_id}' not found")
        toppings = order_service.resolve_toppings(snapshot, item, line.topping_ids)
        order_service.add_to_cart(cart, item, line.quantity, toppings, line.note)
    return cart


# ==================== ROUTES ====================

@router.post("/orders", status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.order_rate_limit)
def submit_order(request: Request, body: OrderSubmitRequest, snapshot: SnapshotDep,
                 service: OrderServiceDep, notifier: NotifierDep):
    """Place a NEW order. Prices are taken from the catalog, never from the client."""
    cart = _cart_from_request(body, snapshot)
    order = service.submit_order(snapshot, cart, body.branch_id, body.table_number, body.payment_method)
    notifier.register(order.id, body.device_token)
    return order.to_store()


@router.get("/orders")
def list_orders(
    snapshot: SnapshotDep,
    role: RequireStaff,
    day: Optional[date] = Query(None, alias="date"),
    branch_id: Optional[str] = None,
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
):
    """Orders of one calendar day with the day's revenue (cancelled orders excluded)."""
    summary = daily_summary(snapshot, day or today(settings.timezone), settings.timezone,
                            branch_id=branch_id, status=status_filter)
    return list_response(
        [o.to_store() for o in summary.orders],
        date=summary.day.isoformat(),
        revenue=summary.revenue,
        new_orders_count=snapshot.new_orders_count,
    )


@router.get("/orders/{order_id}")
def get_order(order_id: str, snapshot: SnapshotDep):
    """Order lookup for customer tracking."""
    order = snapshot.order(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order '{order_id}' not found")
    return order.to_store()


@router.post("/orders/{order_id}/status")
def change_status(order_id: str, body: StatusChangeRequest, role: RequireStaff, service: StateServiceDep):
    """Move an order along the state machine.

    Cancelling returns 202 with a confirmation request; the change only
    happens once that request is confirmed.
    """
    result = service.request_status_change(order_id, body.status, role)
    if isinstance(result, ConfirmationRequest):
        return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=result.to_dict())
    return result.to_store()


@router.patch("/orders/{order_id}")
def edit_order(order_id: str, body: OrderEditRequest, snapshot: SnapshotDep,
               role: RequireAdmin, service: StateServiceDep):
    """Apply edit operations in order and save; the total is recomputed."""
    order: Optional[Order] = snapshot.order(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order '{order_id}' not found")

    try:
        for op in body.operations:
            if op.op == "change_quantity":
                order = order_state_service.change_item_quantity(order, op.index or 0, op.delta)
            elif op.op == "set_note":
                order = order_state_service.set_item_note(order, op.index or 0, op.note)
            elif op.op == "add_item":
                item = snapshot.menu_item(op.menu_item_id or "")
                if item is None:
                    raise HTTPException(status_code=422, detail=f"Menu item '{op.menu_item_id}' not found")
                order = order_state_service.add_menu_item(order, item)
            elif op.op == "set_table":
                order = order_state_service.set_table_number(order, op.table_number)
    except IndexError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return service.save_edit(order, role).to_store()
