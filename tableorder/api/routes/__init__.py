"""API routes."""

import logging

from fastapi import APIRouter

from tableorder.api.routes import admin, auth, checkin, confirmations, kitchen, orders, state

logger = logging.getLogger(__name__)

api_router = APIRouter()

api_router.include_router(state.router, tags=["catalog"])
api_router.include_router(checkin.router, tags=["check-in"])
api_router.include_router(orders.router, tags=["orders"])
api_router.include_router(confirmations.router, tags=["confirmations"])
api_router.include_router(kitchen.router, tags=["kitchen"])
api_router.include_router(auth.router, tags=["auth"])
api_router.include_router(admin.router, tags=["admin"])
