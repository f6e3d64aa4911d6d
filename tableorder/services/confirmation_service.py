"""Two-step confirmation for destructive actions (cancel order, reset data).

A destructive intent produces a ``ConfirmationRequest`` that is presented to
the user. Nothing is written until a ``ConfirmationResult`` with
``confirmed=True`` comes back for that request; a dismissed request is simply
discarded.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional
from uuid import uuid4

from tableorder.core.errors import ConfirmationNotFoundError, ConfirmationNotPermittedError
from tableorder.core.rbac import ClientRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfirmationRequest:
    id: str
    action: str
    title: str
    description: str
    subject_id: Optional[str] = None
    requested_by: Optional[ClientRole] = None
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "confirmation_id": self.id,
            "action": self.action,
            "title": self.title,
            "description": self.description,
            "subject_id": self.subject_id,
            "requested_by": self.requested_by.value if self.requested_by else None,
        }


@dataclass(frozen=True)
class ConfirmationResult:
    request_id: str
    confirmed: bool
    role: Optional[ClientRole] = None


@dataclass
class ConfirmationOutcome:
    request: ConfirmationRequest
    confirmed: bool
    value: Any = None


class ConfirmationGate:
    """Holds pending destructive actions until they are confirmed or dismissed."""

    def __init__(self, ttl_seconds: float = 600):
        self._ttl = ttl_seconds
        self._pending: Dict[str, tuple] = {}
        self._lock = threading.Lock()

    def request(self, action: str, title: str, description: str,
                on_confirm: Callable[[], Any], subject_id: Optional[str] = None,
                requested_by: Optional[ClientRole] = None) -> ConfirmationRequest:
        req = ConfirmationRequest(
            id=uuid4().hex,
            action=action,
            title=title,
            description=description,
            subject_id=subject_id,
            requested_by=requested_by,
        )
        with self._lock:
            self._expire()
            self._pending[req.id] = (req, on_confirm)
        logger.debug(f"Confirmation requested for {action} ({req.id})")
        return req

    def resolve(self, result: ConfirmationResult) -> ConfirmationOutcome:
        """Run the pending action if confirmed; discard it either way.

        A request recorded with ``requested_by`` can only be resolved by that
        role; any other role gets ``ConfirmationNotPermittedError`` and the
        request stays pending.
        """
        with self._lock:
            self._expire()
            entry = self._pending.get(result.request_id)
            if entry is None:
                raise ConfirmationNotFoundError(result.request_id)
            req, on_confirm = entry
            if req.requested_by is not None and result.role != req.requested_by:
                role = result.role.value if result.role else "unknown"
                raise ConfirmationNotPermittedError(req.id, role)
            del self._pending[req.id]

        if not result.confirmed:
            logger.info(f"{req.action} dismissed ({req.id})")
            return ConfirmationOutcome(request=req, confirmed=False)

        value = on_confirm()
        logger.info(f"{req.action} confirmed ({req.id})")
        return ConfirmationOutcome(request=req, confirmed=True, value=value)

    def pending(self, request_id: str) -> Optional[ConfirmationRequest]:
        with self._lock:
            entry = self._pending.get(request_id)
        return entry[0] if entry else None

    def _expire(self) -> None:
        cutoff = time.time() - self._ttl
        for key in [k for k, (req, _) in self._pending.items() if req.created_at < cutoff]:
            del self._pending[key]
