"""FastAPI application entry point.

Wagered chess backend: accounts and balances, wagered games, tournaments
and the realtime game hub.
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import func, select, text
from starlette.middleware.base import BaseHTTPMiddleware

from chesswager import __version__
from chesswager.api import auth, games, leaderboard, tournaments, users, wallet
from chesswager.config import get_settings
from chesswager.logging_config import bind_context, clear_context, configure_logging, get_logger
from chesswager.middleware.prometheus import setup_prometheus
from chesswager.middleware.sentry import init_sentry
from chesswager.models.wallet import ReconciliationFlag
from chesswager.utils.db import async_session_factory, close_db, engine, init_db
from chesswager.utils.errors import ChessWagerError
from chesswager.utils.http_client import close_http_client
from chesswager.utils.json_utils import ORJSONResponse
from chesswager.utils.redis_client import close_redis, get_redis_client, init_redis
from chesswager.ws import ConnectionManager
from chesswager.ws import router as ws_router

settings = get_settings()

configure_logging(
    log_level=settings.log_level,
    json_logs=settings.app_env == "production",
    app_env=settings.app_env,
)
logger = get_logger(__name__)

sentry_enabled = init_sentry(
    dsn=settings.sentry_dsn,
    environment=settings.app_env,
    release=__version__,
    traces_sample_rate=settings.sentry_traces_sample_rate
    if settings.app_env == "production"
    else 0.0,
)
if sentry_enabled:
    logger.info("Sentry error tracking initialized")
elif settings.app_env == "production":
    logger.warning("Sentry DSN not configured - error tracking disabled")

API_PREFIX = "/api"


# =============================================================================
# Lifespan Events
# =============================================================================


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Application lifespan handler for startup and shutdown events."""
    logger.info("Starting application...")

    try:
        await init_db()
        logger.info("Database connection established")

        redis_instance = await init_redis()
        if redis_instance is None:
            logger.info("Redis not configured - resume state kept in memory")
        else:
            logger.info("Redis connection established")

        _app.state.connections = ConnectionManager(
            session_factory=async_session_factory,
            redis=redis_instance,
        )
        logger.info("Application startup complete")
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise

    yield

    logger.info("Shutting down application...")
    try:
        await _app.state.connections.stop()
        await close_http_client()
        await close_db()
        await close_redis()
        logger.info("Application shutdown complete")
    except Exception as e:
        logger.error(f"Shutdown error: {e}")


# =============================================================================
# FastAPI Application
# =============================================================================


app = FastAPI(
    title="Chess Wager API",
    version=__version__,
    description="Wagered chess games and tournaments",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
)

prometheus_instrumentator = setup_prometheus(app, app_version=__version__)


# =============================================================================
# Middleware
# =============================================================================


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Adds X-Request-ID to every response and binds it to the log context."""

    async def dispatch(self, request: Request, call_next):
        if request.headers.get("upgrade", "").lower() == "websocket":
            return await call_next(request)

        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        start_time = datetime.now(timezone.utc)
        bind_context(request_id=request_id)

        try:
            response = await call_next(request)
        finally:
            clear_context()

        response.headers["X-Request-ID"] = request_id
        duration = (datetime.now(timezone.utc) - start_time).total_seconds()
        logger.info(
            f"{request.method} {request.url.path} - "
            f"Status: {response.status_code} - "
            f"Duration: {duration:.3f}s - "
            f"Request-ID: {request_id}"
        )
        return response


app.add_middleware(RequestIDMiddleware)

cors_origins = [origin.strip() for origin in settings.cors_origins.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)


# =============================================================================
# Error Handlers
# =============================================================================


def get_request_id(request: Request) -> str:
    if hasattr(request.state, "request_id"):
        return request.state.request_id
    return request.headers.get("X-Request-ID", str(uuid.uuid4()))


def create_error_response(
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    trace_id: str | None = None,
) -> dict[str, Any]:
    """Create standardized error response."""
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        },
        "traceId": trace_id,
    }


@app.exception_handler(ChessWagerError)
async def chess_wager_error_handler(request: Request, exc: ChessWagerError) -> ORJSONResponse:
    """Map core errors to their HTTP status with a stable code."""
    return ORJSONResponse(
        status_code=exc.status_code,
        content={"error": exc.to_dict(), "traceId": get_request_id(request)},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> ORJSONResponse:
    trace_id = get_request_id(request)

    if isinstance(exc.detail, dict) and "error" in exc.detail:
        content = {**exc.detail, "traceId": trace_id}
    else:
        content = create_error_response(
            code="HTTP_ERROR",
            message=str(exc.detail),
            trace_id=trace_id,
        )

    return ORJSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> ORJSONResponse:
    return ORJSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=create_error_response(
            code="INVALID_REQUEST",
            message="Request validation failed",
            details={"errors": [
                {"loc": list(e.get("loc", ())), "msg": e.get("msg")}
                for e in exc.errors()
            ]},
            trace_id=get_request_id(request),
        ),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    """Handle unexpected exceptions."""
    trace_id = get_request_id(request)

    logger.error(
        "unexpected_error",
        error_type=type(exc).__name__,
        error_message=str(exc),
        trace_id=trace_id,
        exc_info=True,
    )

    message = "Internal server error"
    if settings.app_debug:
        message = f"{type(exc).__name__}: {exc}"

    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=create_error_response(
            code="INTERNAL_ERROR",
            message=message,
            trace_id=trace_id,
        ),
    )


# =============================================================================
# Health Check
# =============================================================================


@app.get("/health", tags=["Health"], summary="Health check endpoint")
async def health_check(request: Request) -> dict[str, Any]:
    """Database and Redis connectivity, live sockets and stranded funds.

    Unresolved reconciliation flags do not degrade the status; they are
    reported so an operator can see money waiting for manual settlement.
    """
    manager = getattr(request.app.state, "connections", None)
    health_status: dict[str, Any] = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
        "services": {
            "database": "unknown",
            "redis": "not configured",
        },
        "connections": manager.connection_count if manager else 0,
        "unresolvedReconciliations": None,
    }

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
            health_status["unresolvedReconciliations"] = await conn.scalar(
                select(func.count()).select_from(ReconciliationFlag).where(
                    ReconciliationFlag.resolved.is_(False)
                )
            )
        health_status["services"]["database"] = "healthy"
    except Exception as e:
        health_status["services"]["database"] = "unhealthy"
        health_status["status"] = "degraded"
        logger.error(f"Database health check failed: {e}")

    redis = get_redis_client()
    if redis is not None:
        try:
            await redis.ping()
            health_status["services"]["redis"] = "healthy"
        except Exception as e:
            health_status["services"]["redis"] = "unhealthy"
            health_status["status"] = "degraded"
            logger.error(f"Redis health check failed: {e}")

    return health_status


# =============================================================================
# Routers
# =============================================================================


app.include_router(auth.router, prefix=API_PREFIX)
app.include_router(users.router, prefix=API_PREFIX)
app.include_router(leaderboard.router, prefix=API_PREFIX)
app.include_router(games.router, prefix=API_PREFIX)
app.include_router(wallet.router, prefix=API_PREFIX)
app.include_router(tournaments.router, prefix=API_PREFIX)
app.include_router(ws_router)
