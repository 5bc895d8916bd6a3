from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict
from uuid import uuid4

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi import WebSocket, WebSocketDisconnect

from tracker.core.errors import ConsistencyFault, GuardError, NotFoundError, TrackerError
from tracker.core.settings import get_app_settings
from tracker.core.logging import configure_logging, correlation_id_var, station_id_var
from tracker.db.run_migrations import main as run_alembic
from tracker.db.seed import seed_all
from tracker.schemas.common import ErrorInfo, ErrorResponse, MessageResponse
from tracker.services.realtime import broadcast_manager

# Routers
from tracker.api.routes.dashboard import router as dashboard_router
from tracker.api.routes.production import router as production_router
from tracker.api.routes.scanner import router as scanner_router

settings = get_app_settings()

# Configure structured logging once at import
configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "Health", "description": "Liveness and readiness probes."},
    {"name": "Production", "description": "Production orders, travel sheets and due-date risk."},
    {"name": "QR Scanner", "description": "Checkpoint scans and operation completion."},
    {"name": "Dashboard", "description": "Production dashboard rows and counters."},
    {
        "name": "WebSocket",
        "description": "WebSocket usage, endpoints, and connection details.",
    },
]

app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    openapi_tags=openapi_tags,
)

# CORS - avoid wildcard with credentials
cors_allow_credentials = settings.CORS_ALLOW_CREDENTIALS
if settings.CORS_ORIGINS == ["*"] and cors_allow_credentials:
    logger.warning("CORS_ALLOW_CREDENTIALS=True with '*' origins is not permitted; disabling credentials.")
    cors_allow_credentials = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=cors_allow_credentials,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """
    Enrich request context with correlation_id and station_id for logging and error responses.
    Adds 'X-Correlation-ID' to every response.
    """
    corr = request.headers.get("X-Correlation-ID") or request.headers.get("X-Request-ID") or str(uuid4())
    station = request.headers.get("X-Station-ID")
    token_corr = correlation_id_var.set(corr)
    token_station = station_id_var.set(station)
    request.state.correlation_id = corr
    request.state.station_id = station

    logger.info("Incoming request %s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
    finally:
        correlation_id_var.reset(token_corr)
        station_id_var.reset(token_station)

    response.headers["X-Correlation-ID"] = corr
    return response


def _build_error_response(
    request: Request,
    status_code: int,
    error_type: str,
    message: str,
    details: Any | None = None,
) -> JSONResponse:
    """Build a standardized ErrorResponse JSONResponse."""
    ts = datetime.now(tz=timezone.utc)
    err = ErrorResponse(
        status=status_code,
        error=ErrorInfo(type=error_type, message=message, details=details),
        correlation_id=getattr(request.state, "correlation_id", None),
        station_id=getattr(request.state, "station_id", None),
        path=request.url.path,
        method=request.method,
        timestamp=ts,
    )
    return JSONResponse(status_code=status_code, content=err.model_dump(mode="json"))


def status_for(exc: TrackerError) -> int:
    """HTTP status for a tracker error family."""
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, GuardError):
        return 409
    if isinstance(exc, ConsistencyFault):
        return 500
    return 422


@app.exception_handler(TrackerError)
async def tracker_exception_handler(request: Request, exc: TrackerError):
    """
    Map tracker errors onto the error envelope: not found -> 404, other input
    errors -> 422, guard rejections -> 409, consistency faults -> 500.
    """
    return _build_error_response(
        request=request,
        status_code=status_for(exc),
        error_type=exc.code,
        message=exc.message,
        details=exc.details,
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """
    Global handler for HTTPException to produce a standardized error envelope.
    """
    detail = exc.detail if isinstance(exc.detail, str) else "HTTP Error"
    return _build_error_response(
        request=request,
        status_code=exc.status_code,
        error_type="http_error",
        message=str(detail),
        details=None if isinstance(exc.detail, str) else exc.detail,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Global handler for request validation errors with a standard structure.
    """
    return _build_error_response(
        request=request,
        status_code=422,
        error_type="validation_error",
        message="Request validation failed",
        details=jsonable_encoder(exc.errors()),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """
    Catch-all handler to avoid leaking stack traces and to return a structured error.
    """
    logger.exception("Unhandled error processing request")
    return _build_error_response(
        request=request,
        status_code=500,
        error_type="internal_error",
        message="An unexpected error occurred",
        details=None,
    )


@app.on_event("startup")
async def on_startup() -> None:
    """
    Run migrations and optional seeding on service startup.

    This ensures the database schema is up to date. Seeding is opt-in via settings.
    """
    if settings.RUN_MIGRATIONS_ON_STARTUP:
        try:
            logger.info("Running Alembic migrations: upgrade head")
            # env.py drives its own event loop, so keep it off the server loop.
            await asyncio.to_thread(run_alembic, ["upgrade", "head"])
            logger.info("Migrations completed.")
        except Exception as exc:
            logger.exception("Migration step failed: %s", exc)
            # Do not crash the app in case of transient DB issues; rely on retries or later readiness probes.

    if settings.AUTO_SEED:
        try:
            logger.info("Running database seeding...")
            await seed_all()
            logger.info("Seeding completed.")
        except Exception as exc:
            logger.exception("Seeding step failed: %s", exc)


# Build API v1 router and include sub-routers
api_v1 = APIRouter(prefix="/api/v1")

# PUBLIC_INTERFACE
@api_v1.get(
    "/health",
    response_model=MessageResponse,
    summary="Health Check",
    tags=["Health"],
)
def health_check() -> MessageResponse:
    """
    Basic liveness health check endpoint.

    Returns:
        MessageResponse: Simple confirmation that the service is running.
    """
    return MessageResponse(message="Healthy")


# PUBLIC_INTERFACE
@api_v1.get(
    "/websocket-info",
    response_model=Dict[str, Any],
    summary="WebSocket Usage Information",
    description="Connection details for the shop-floor WebSocket feed.",
    tags=["WebSocket"],
)
def websocket_info() -> Dict[str, Any]:
    """
    Describe how to connect to WebSocket endpoints in this service.

    Returns:
        JSON object with usage notes and endpoints list describing query params and message format.
    """
    return {
        "usage": (
            "Connect to /ws/floor for every operation event, or pass 'production_order_id' to follow one order. "
            "Message format is JSON with fields: { type: string, payload: object, at: ISO-8601, channel?: string }."
        ),
        "endpoints": [
            {
                "path": "/ws/floor",
                "summary": "Operation started/completed events (server push).",
                "query": ["production_order_id?"],
                "messages": {
                    "client_to_server": ["ping"],
                    "server_to_client": ["operation.started", "operation.completed"],
                },
            }
        ],
        "notes": "WebSocket endpoints are not represented in OpenAPI schema; refer to this endpoint for usage.",
    }


api_v1.include_router(production_router)
api_v1.include_router(scanner_router)
api_v1.include_router(dashboard_router)

# Attach api_v1 to app
app.include_router(api_v1)


# PUBLIC_INTERFACE
@app.websocket("/ws/floor")
async def ws_floor(websocket: WebSocket):
    """
    WebSocket endpoint for real-time shop-floor progress.

    Query Parameters:
      - production_order_id: optional; restricts the feed to one order

    Messages:
      - Server -> Client: type='operation.started' | 'operation.completed', payload=FloorEvent
      - Client -> Server: optional 'ping' to keepalive; other messages ignored.
    """
    await websocket.accept()
    topic = broadcast_manager.floor_topic(websocket.query_params.get("production_order_id"))
    await broadcast_manager.connect(topic, websocket)

    try:
        while True:
            msg = await websocket.receive_text()
            if msg and msg.lower() == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        await broadcast_manager.disconnect(topic, websocket)
    except Exception:
        logger.exception("Error on ws_floor connection")
        await broadcast_manager.disconnect(topic, websocket)
        await websocket.close()
