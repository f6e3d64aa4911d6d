"""FastAPI application entry point."""

import asyncio
import json
import logging
import sys
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Query, Request, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

from tableorder import __version__
from tableorder.api.routes import api_router
from tableorder.core.config import settings
from tableorder.core.errors import (
    AuthenticationError,
    CheckInError,
    ConfirmationNotFoundError,
    ConfirmationNotPermittedError,
    ConfirmationRequiredError,
    InvalidTransitionError,
    OrderingError,
    OrderNotEditableError,
    OrderNotFoundError,
    OrderValidationError,
    StoreError,
    TransitionNotPermittedError,
)
from tableorder.core.rate_limit import limiter
from tableorder.core.rbac import ClientRole
from tableorder.db.store import create_store
from tableorder.schemas.snapshot import StoreSnapshot
from tableorder.services.confirmation_service import ConfirmationGate
from tableorder.services.firebase_service import firebase_push
from tableorder.services.notification_service import OrderReadyNotifier
from tableorder.services.seed_service import seed_if_empty
from tableorder.services.sync_service import SyncReconciler


# WebSocket Connection Manager for real-time updates
class ConnectionManager:
    """Manages WebSocket connections for snapshot broadcasts."""

    MAX_CONNECTIONS_PER_CHANNEL = 200

    def __init__(self):
        self.active_connections: Dict[str, List[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, channel: str = "default") -> bool:
        """Accept and register ``websocket``; False when the channel is full."""
        if len(self.active_connections.get(channel, [])) >= self.MAX_CONNECTIONS_PER_CHANNEL:
            logger.warning(f"WebSocket connection rejected: channel '{channel}' at capacity")
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return False

        await websocket.accept()
        self.active_connections.setdefault(channel, []).append(websocket)
        logger.debug(f"WebSocket connected to channel '{channel}'")
        return True

    def disconnect(self, websocket: WebSocket, channel: str = "default"):
        if websocket in self.active_connections.get(channel, []):
            self.active_connections[channel].remove(websocket)
        logger.debug(f"WebSocket disconnected from channel '{channel}'")

    async def broadcast(self, message: Dict[str, Any], channel: str = "default"):
        """Broadcast a message to all connections in a channel."""
        disconnected = []
        for connection in list(self.active_connections.get(channel, [])):
            try:
                await connection.send_json(message)
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.debug(f"WebSocket send failed: {e}")
                disconnected.append(connection)

        for conn in disconnected:
            self.disconnect(conn, channel)

    def get_connection_count(self, channel: Optional[str] = None) -> int:
        if channel:
            return len(self.active_connections.get(channel, []))
        return sum(len(conns) for conns in self.active_connections.values())


# Global connection manager instance
ws_manager = ConnectionManager()

ORDERS_CHANNEL = "orders"

# Configure logging - use JSON format in production, human-readable in dev
root_logger = logging.getLogger()
root_logger.setLevel(getattr(logging, settings.log_level))
root_logger.handlers.clear()

if settings.debug:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
else:
    class JSONFormatter(logging.Formatter):
        def format(self, record):
            return json.dumps({
                "ts": self.formatTime(record, self.datefmt),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
                "module": record.module,
                "line": record.lineno,
            })

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())

root_logger.addHandler(handler)
logger = logging.getLogger(__name__)
request_logger = logging.getLogger("requests")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging all HTTP requests and responses."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path in ["/health", "/", "/docs", "/openapi.json"]:
            return await call_next(request)

        start_time = time.time()
        client_ip = request.client.host if request.client else "unknown"
        request_logger.info(f"Request: {request.method} {request.url.path} - Client: {client_ip}")

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            request_logger.error(
                f"Error: {request.method} {request.url.path} - "
                f"Exception: {str(e)} - Time: {process_time:.3f}s - Client: {client_ip}"
            )
            raise

        process_time = time.time() - start_time
        log_level = logging.WARNING if response.status_code >= 400 else logging.INFO
        request_logger.log(
            log_level,
            f"Response: {request.method} {request.url.path} - "
            f"Status: {response.status_code} - Time: {process_time:.3f}s - Client: {client_ip}"
        )
        return response


def snapshot_message(snapshot: StoreSnapshot, version: int) -> Dict[str, Any]:
    return {
        "type": "snapshot",
        "version": version,
        "new_orders_count": snapshot.new_orders_count,
        "orders": [o.to_store() for o in snapshot.orders],
        "kitchen_settings": snapshot.kitchen_settings.to_store(),
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting table ordering service")

    # Tests may inject a store before startup
    store = getattr(app.state, "store", None) or create_store(settings)
    app.state.store = store
    logger.info(f"Document store: {type(store).__name__}")

    if settings.seed_on_startup:
        seed_if_empty(store)

    if settings.firebase_credentials_path:
        firebase_push.initialize(settings.firebase_credentials_path)

    loop = asyncio.get_running_loop()

    def dispatch(coro):
        return asyncio.run_coroutine_threadsafe(coro, loop)

    notifier = OrderReadyNotifier(firebase_push, dispatch)
    reconciler = SyncReconciler(
        store,
        role=ClientRole.ADMIN,
        default_allowed_distance=settings.default_allowed_distance_m,
    )
    reconciler.add_listener(notifier.handle_snapshot)
    reconciler.add_listener(
        lambda snapshot: dispatch(ws_manager.broadcast(snapshot_message(snapshot, reconciler.version), ORDERS_CHANNEL))
    )
    reconciler.start()

    app.state.reconciler = reconciler
    app.state.notifier = notifier
    app.state.confirmations = ConfirmationGate()

    yield

    reconciler.stop()
    logger.info("Shutting down table ordering service")


app = FastAPI(
    title="Table Ordering Platform",
    description="QR table check-in, ordering, kitchen display and order administration",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# Rate limiting setup
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# ===== Domain error mapping =====

ERROR_STATUS = [
    (OrderValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (CheckInError, status.HTTP_400_BAD_REQUEST),
    (AuthenticationError, status.HTTP_401_UNAUTHORIZED),
    (TransitionNotPermittedError, status.HTTP_403_FORBIDDEN),
    (ConfirmationNotPermittedError, status.HTTP_403_FORBIDDEN),
    (OrderNotFoundError, status.HTTP_404_NOT_FOUND),
    (ConfirmationNotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (OrderNotEditableError, status.HTTP_409_CONFLICT),
    (ConfirmationRequiredError, status.HTTP_409_CONFLICT),
    (StoreError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_for(error: OrderingError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


@app.exception_handler(OrderingError)
async def ordering_error_handler(request: Request, exc: OrderingError):
    status_code = status_for(exc)
    content: Dict[str, Any] = {"detail": exc.message, "code": exc.code}
    if isinstance(exc, OrderValidationError):
        content["reason"] = exc.reason
        content["menu_item_id"] = exc.menu_item_id
    elif isinstance(exc, StoreError):
        logger.error(f"Store failure on {request.method} {request.url.path}: {exc.message}")
        content["detail"] = "The order store is unavailable, please try again"
    elif hasattr(exc, "distance_meters"):
        content["distance_meters"] = round(exc.distance_meters, 1)
        content["allowed_meters"] = exc.allowed_meters
    return JSONResponse(status_code=status_code, content=content)


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)

# CORS middleware - added last so it runs first (Starlette LIFO order)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Accept", "Origin", "X-Client-Role", "X-Session"],
    max_age=600,
)

app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.get("/health")
def health_check():
    """Basic liveness check endpoint."""
    return {"status": "healthy", "version": __version__}


@app.get("/health/ready")
def readiness_check(request: Request):
    """Readiness probe: store reachable and reconciler subscribed."""
    checks = {"store": "unknown", "reconciler": "unknown"}
    try:
        request.app.state.store.read_all()
        checks["store"] = "healthy"
    except StoreError as e:
        logger.error(f"Store health check failed: {e}")
        checks["store"] = "unhealthy"

    reconciler = request.app.state.reconciler
    checks["reconciler"] = "healthy" if reconciler.is_running else "stopped"
    checks["websocket_manager"] = f"healthy ({ws_manager.get_connection_count()} connections)"

    all_healthy = all(c.startswith("healthy") for c in checks.values())
    return {
        "status": "ready" if all_healthy else "degraded",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }


@app.get("/")
def root():
    return {"message": "Table Ordering Platform API", "docs": "/docs", "health": "/health"}


@app.websocket("/ws/orders")
async def websocket_orders(websocket: WebSocket, session: Optional[str] = Query(None)):
    """Live order snapshots for staff screens. Requires the session flag."""
    if session != settings.session_flag_value:
        logger.warning("WebSocket rejected for 'orders': no staff session")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    if not await ws_manager.connect(websocket, ORDERS_CHANNEL):
        return
    reconciler = websocket.app.state.reconciler
    await websocket.send_json(snapshot_message(reconciler.snapshot, reconciler.version))
    try:
        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        ws_manager.disconnect(websocket, ORDERS_CHANNEL)
