"""Admin routes: data reset and printable table QR codes."""

import logging
from typing import Literal

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse

from tableorder.api.deps import ConfirmationsDep, SnapshotDep, StoreDep
from tableorder.core.config import settings
from tableorder.core.rbac import RequireAdmin
from tableorder.services.seed_service import request_reset
from tableorder.services.table_qr_service import build_checkin_payload, build_table_url, render_qr

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/admin/reset")
def reset_all_data(role: RequireAdmin, store: StoreDep, gate: ConfirmationsDep):
    """Request a reset to the initial data set; resolve it via /confirmations."""
    req = request_reset(store, gate, role)
    return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=req.to_dict())


@router.get("/admin/branches/{branch_id}/tables/{table}/qr")
def get_table_qr(
    branch_id: str,
    table: int,
    role: RequireAdmin,
    snapshot: SnapshotDep,
    target: Literal["url", "checkin"] = "checkin",
    format: Literal["png", "svg"] = "png",
):
    """QR code for a table: the check-in payload (default) or the table URL."""
    branch = snapshot.branch(branch_id)
    if branch is None:
        raise HTTPException(status_code=404, detail=f"Branch '{branch_id}' not found")
    if table < 1:
        raise HTTPException(status_code=422, detail="Table number must be positive")

    if target == "url":
        data = build_table_url(settings.customer_web_url, branch.id, table)
    else:
        data = build_checkin_payload(branch, table)

    return {
        "branch_id": branch.id,
        "table_number": table,
        "target": target,
        "format": format,
        "data": data,
        "qr_data": render_qr(data, format),
    }
