"""
api/main.py -- FastAPI application entry point for BusTrack.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for the dashboard origin(s)
  3. log_requests          -- one log line per request with latency

Rate limiting is not middleware: each router declares the limit it needs as a
dependency (api/limiter.py), because login counts only failed attempts.

Lifespan builds the document store, repositories, services, token issuer and
rate limiter on startup and disposes the store on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import anyio
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import API, LOGIN, REGISTER, RateLimiter
from api.models import ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.buses import router as buses_router
from auth.service import IdentityService
from auth.store import UserRepository
from auth.tokens import TokenIssuer
from core.cancellation import OperationCancelled
from core.config import Settings, get_settings
from core.errors import AuthenticationError, BusTrackError, RateLimitError
from fleet.service import BusService
from fleet.store import BusRepository
from storage.documents import DocumentStore

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("bustrack.api")

# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

UNIQUE_FIELDS = {"users": ("email",), "buses": ("licensePlate",)}


def build_state(app: FastAPI, settings: Settings, store: DocumentStore) -> None:
    """Attach repositories, services, token issuer and rate limiter to app.state.

    Shared by the real lifespan and the test lifespan so both wire the app
    the same way.
    """
    tokens = TokenIssuer(settings)
    app.state.store = store
    app.state.tokens = tokens
    app.state.identity = IdentityService(
        UserRepository(store),
        tokens,
        bcrypt_rounds=settings.bcrypt_rounds,
        self_registration_enabled=settings.self_registration_enabled,
    )
    app.state.buses = BusService(BusRepository(store), pagination_strategy=settings.pagination_strategy)
    app.state.limiter = RateLimiter(
        settings.rate_limit_storage_uri,
        {
            LOGIN: settings.login_rate_limit,
            REGISTER: settings.register_rate_limit,
            API: settings.api_rate_limit,
        },
    )


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build app-level resources on startup and release them on shutdown."""
    settings = get_settings()
    logger.info("BusTrack API starting up (debug=%s)", settings.debug)
    store = DocumentStore(settings.database_url, unique_fields=UNIQUE_FIELDS)
    build_state(app, settings, store)
    logger.info(
        "Store initialized (pagination=%s, self_registration=%s)",
        settings.pagination_strategy,
        settings.self_registration_enabled,
    )

    yield

    app.state.store.close()
    logger.info("BusTrack API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

_settings = get_settings()

app = FastAPI(
    title="BusTrack API",
    description="Fleet tracking: buses, positions and supervisor accounts.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    expose_headers=["Retry-After"],
    max_age=3600,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(buses_router, prefix="/api/v1", tags=["Buses"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly: {"error": str, "type": str, "details"?: object}.
# ---------------------------------------------------------------------------


def _error(status_code: int, error: str, error_type: str, details: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, type=error_type, details=details).model_dump(exclude_none=True),
    )


@app.exception_handler(BusTrackError)
async def bustrack_error_handler(request: Request, exc: BusTrackError) -> JSONResponse:
    """Render any deliberate application error with its own status and type.

    Retry-After accompanies 429s; WWW-Authenticate accompanies 401s.
    """
    response = JSONResponse(status_code=exc.status_code, content=exc.to_dict())
    if isinstance(exc, RateLimitError):
        response.headers["Retry-After"] = str(exc.retry_after)
    elif isinstance(exc, AuthenticationError):
        response.headers["WWW-Authenticate"] = "Bearer"
    if exc.status_code >= 500:
        logger.error("%s on %s %s", exc.error_type, request.method, request.url.path)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with one {field: reason} entry per failed input."""
    details: dict[str, str] = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        details[".".join(loc) or "body"] = err.get("msg", "Invalid value")
    first = next(iter(details.values()), "Request validation failed.")
    return _error(422, first, "VALIDATION_ERROR", details)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Wrap framework HTTP errors (404 unknown route, 405) in the same envelope."""
    error_type = {404: "NOT_FOUND", 405: "METHOD_NOT_ALLOWED"}.get(exc.status_code, f"HTTP_{exc.status_code}")
    return _error(exc.status_code, str(exc.detail), error_type)


@app.exception_handler(OperationCancelled)
async def cancelled_handler(request: Request, exc: OperationCancelled) -> JSONResponse:
    """The client went away mid-request. Nobody reads this response; 499 keeps logs honest."""
    logger.info("Request cancelled by client: %s %s", request.method, request.url.path)
    return _error(499, "Client closed request", "CLIENT_CLOSED_REQUEST")


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    Security note: the raw exception is written to the log only, never to
    the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "An unexpected error occurred.", "INTERNAL_ERROR")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable.
# No rate limit and no auth -- load balancers must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", response_model=HealthResponse, tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return API liveness, version and a database round-trip check."""
    try:
        await anyio.to_thread.run_sync(request.app.state.store.ping)
        database = "ok"
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        database = "error"
    status = "healthy" if database == "ok" else "degraded"
    return HealthResponse(status=status, version=VERSION, components={"app": "ok", "database": database})
