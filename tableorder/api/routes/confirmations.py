"""Resolution of pending destructive actions (cancel order, reset data)."""

import logging

from fastapi import APIRouter
from pydantic import BaseModel

from tableorder.api.deps import ConfirmationsDep
from tableorder.core.rbac import RequireStaff
from tableorder.services.confirmation_service import ConfirmationResult

logger = logging.getLogger(__name__)

router = APIRouter()


class ConfirmationDecision(BaseModel):
    confirmed: bool


@router.post("/confirmations/{confirmation_id}")
def resolve_confirmation(confirmation_id: str, body: ConfirmationDecision,
                         role: RequireStaff, gate: ConfirmationsDep):
    """Confirm or dismiss a pending request. Dismissing writes nothing."""
    outcome = gate.resolve(ConfirmationResult(request_id=confirmation_id, confirmed=body.confirmed, role=role))
    value = outcome.value
    return {
        "confirmation_id": confirmation_id,
        "action": outcome.request.action,
        "confirmed": outcome.confirmed,
        "result": value.to_store() if hasattr(value, "to_store") else None,
    }
