"""Client roles and the flat staff-session check.

The platform has no accounts or tokens: staff screens are unlocked by a
plain session flag set after a successful username/password equality
check. HTTP clients send the role they act as in ``X-Client-Role`` and the
flag in ``X-Session``.
"""

from enum import Enum
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from tableorder.core.config import settings


class ClientRole(str, Enum):
    """Roles of the three independently refreshing client surfaces."""

    CUSTOMER = "customer"
    KITCHEN = "kitchen"
    ADMIN = "admin"


STAFF_ROLES = {ClientRole.KITCHEN, ClientRole.ADMIN}


def get_client_role(
    x_client_role: Annotated[str, Header()] = ClientRole.CUSTOMER.value,
    x_session: Annotated[str, Header()] = "",
) -> ClientRole:
    """Resolve the acting role; staff roles require the session flag."""
    try:
        role = ClientRole(x_client_role.lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown client role '{x_client_role}'",
        )

    if role in STAFF_ROLES and x_session != settings.session_flag_value:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Staff session required",
        )
    return role


class RoleChecker:
    """Dependency that allows only the given roles."""

    def __init__(self, *allowed: ClientRole):
        self.allowed = set(allowed)

    def __call__(self, role: Annotated[ClientRole, Depends(get_client_role)]) -> ClientRole:
        if role not in self.allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{role.value}' is not allowed here",
            )
        return role


CurrentRole = Annotated[ClientRole, Depends(get_client_role)]
RequireStaff = Annotated[ClientRole, Depends(RoleChecker(ClientRole.KITCHEN, ClientRole.ADMIN))]
RequireAdmin = Annotated[ClientRole, Depends(RoleChecker(ClientRole.ADMIN))]
