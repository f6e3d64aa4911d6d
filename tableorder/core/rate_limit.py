"""Shared rate limiter instance for the public write routes."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from tableorder.core.config import settings

limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)
