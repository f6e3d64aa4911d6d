"""Kitchen display routes."""

import logging
from typing import Optional

from fastapi import APIRouter

from tableorder.api.deps import SnapshotDep
from tableorder.core.config import settings
from tableorder.core.rbac import RequireStaff
from tableorder.core.responses import list_response
from tableorder.services.order_report_service import kitchen_queue
from tableorder.services.order_service import now_ms

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/kitchen/queue")
def get_kitchen_queue(snapshot: SnapshotDep, role: RequireStaff, branch_id: Optional[str] = None):
    """NEW orders, oldest first, with their urgency band and the alert sound settings."""
    tickets = kitchen_queue(
        snapshot,
        now_ms(),
        branch_id=branch_id,
        warning_after=settings.kitchen_warning_after_s,
        overdue_after=settings.kitchen_overdue_after_s,
    )
    return list_response(
        [t.to_dict() for t in tickets],
        new_orders_count=snapshot.new_orders_count,
        kitchen_settings=snapshot.kitchen_settings.to_store(),
    )
