"""Request-scoped accessors for the objects created in the app lifespan."""

from typing import Annotated

from fastapi import Depends, Request

from tableorder.db.store import DocumentStore
from tableorder.schemas.snapshot import StoreSnapshot
from tableorder.services.confirmation_service import ConfirmationGate
from tableorder.services.notification_service import OrderReadyNotifier
from tableorder.services.order_service import OrderService
from tableorder.services.order_state_service import OrderStateService
from tableorder.services.sync_service import SyncReconciler


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def get_reconciler(request: Request) -> SyncReconciler:
    return request.app.state.reconciler


def get_snapshot(request: Request) -> StoreSnapshot:
    """Latest sanitized snapshot held by the server-side reconciler."""
    return request.app.state.reconciler.snapshot


def get_confirmations(request: Request) -> ConfirmationGate:
    return request.app.state.confirmations


def get_notifier(request: Request) -> OrderReadyNotifier:
    return request.app.state.notifier


def get_order_service(store: Annotated[DocumentStore, Depends(get_store)]) -> OrderService:
    return OrderService(store)


def get_state_service(
    store: Annotated[DocumentStore, Depends(get_store)],
    reconciler: Annotated[SyncReconciler, Depends(get_reconciler)],
    gate: Annotated[ConfirmationGate, Depends(get_confirmations)],
) -> OrderStateService:
    return OrderStateService(store, lambda: reconciler.snapshot, gate)


StoreDep = Annotated[DocumentStore, Depends(get_store)]
SnapshotDep = Annotated[StoreSnapshot, Depends(get_snapshot)]
ConfirmationsDep = Annotated[ConfirmationGate, Depends(get_confirmations)]
NotifierDep = Annotated[OrderReadyNotifier, Depends(get_notifier)]
OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]
StateServiceDep = Annotated[OrderStateService, Depends(get_state_service)]
