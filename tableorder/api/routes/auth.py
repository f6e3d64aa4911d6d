"""Staff login/logout: returns the flat session flag the client stores."""

import logging

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from tableorder.api.deps import StoreDep
from tableorder.core.config import settings
from tableorder.core.rate_limit import limiter
from tableorder.services.auth_service import authenticate

logger = logging.getLogger(__name__)

router = APIRouter()


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1, max_length=200)


@router.post("/auth/login")
@limiter.limit(settings.login_rate_limit)
def login(request: Request, body: LoginRequest, store: StoreDep):
    authenticate(store, body.username, body.password)
    return {"session": settings.session_flag_value}


@router.post("/auth/logout")
def logout():
    # The flag lives on the client; nothing to invalidate here
    return {"session": None}
