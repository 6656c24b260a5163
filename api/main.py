"""
api/main.py -- FastAPI application entry point for HomeInv.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. log_requests          -- one access-log line per request

Lifespan builds every service exactly once from the Settings instance and
parks it on app.state; route handlers and auth dependencies read app.state
and never consult configuration themselves. Startup and shutdown are
symmetric: the audit worker is started last and drained first.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from api.routes.inventory import router as inventory_router
from api.routes.users import router as users_router
from audit.recorder import AuditRecorder
from auth.directory import DirectoryAuthenticator
from auth.errors import TooManyAttempts
from auth.service import AuthenticationService
from auth.store import UserStore
from auth.throttle import LoginThrottle
from auth.tokens import TokenService
from core.config import Settings, get_settings
from inventory.store import InventoryStore

__version__ = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("homeinv.api")


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


def init_state(
    app: FastAPI,
    settings: Settings,
    store: InventoryStore,
    directory: DirectoryAuthenticator | None = None,
) -> None:
    """Build the auth and audit services and attach them to app.state.

    Shared by the real lifespan and the test lifespan so both wire the
    services identically. The audit worker is not started here; the caller
    awaits app.state.audit.start() inside its event loop.
    """
    if directory is None:
        directory = DirectoryAuthenticator(
            url=settings.ldap_url,
            base_dn=settings.ldap_domain_components,
            user_attribute=settings.ldap_user_attribute,
            timeout=settings.ldap_timeout_seconds,
            validate_cert=settings.ldap_validate_cert,
        )
    users = UserStore(store)
    app.state.settings = settings
    app.state.store = store
    app.state.users = users
    app.state.tokens = TokenService(settings.jwt_secret, settings.token_expiry_seconds)
    app.state.authenticator = AuthenticationService(
        users,
        directory,
        directory_timeout=settings.ldap_timeout_seconds,
        bcrypt_rounds=settings.bcrypt_rounds,
    )
    app.state.login_throttle = LoginThrottle(settings.login_max_attempts, settings.login_window_seconds)
    app.state.audit = AuditRecorder(store, record_reads=settings.audit_reads)


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Store first -- everything else reads or writes through it.
      2. Connectivity probe -- a dead database is logged loudly at startup
         rather than discovered on the first login.
      3. Services, then the audit worker last.
    """
    settings = get_settings()
    logger.info("HomeInv API starting up")
    store = InventoryStore(settings.database_url)
    try:
        store.execute_query("", "TEST", {})
        logger.info("Database connection test successful")
    except Exception:
        logger.exception("Database unavailable at startup")

    init_state(app, settings, store)
    if not settings.ldap_url:
        logger.info("LDAP_URL not set -- directory logins are disabled")
    await app.state.audit.start()
    logger.info(
        "Auth initialized (token_expiry=%ss, login limit=%d/%ss, audit_verbosity=%s)",
        settings.token_expiry_seconds,
        settings.login_max_attempts,
        settings.login_window_seconds,
        settings.audit_verbosity,
    )

    yield

    # Shutdown
    await app.state.audit.stop()
    app.state.store.close()
    logger.info("HomeInv API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="HomeInv API",
    description="Home inventory records behind token-based sessions.",
    version=__version__,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS. Host and origin lists are deployment settings, read
# once here at import time.
# ---------------------------------------------------------------------------

_settings = get_settings()

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Every request passes through this coroutine before reaching any route
# handler. The acting username is read from request.state after the handler
# ran, so authenticated requests are attributed in the access log.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    identity = getattr(request.state, "identity", None)
    logger.info(
        "%s %s %d %.1fms %s %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
        identity.username if identity else "-",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api", tags=["Auth"])
app.include_router(users_router, prefix="/api", tags=["Users"])
app.include_router(inventory_router, prefix="/api", tags=["Inventory"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(TooManyAttempts)
async def too_many_attempts_handler(request: Request, exc: TooManyAttempts) -> JSONResponse:
    """Return 429 with a Retry-After hint when the login throttle trips."""
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests. Try again later.",
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(exc.retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation.

    The error list is reduced to locations and messages; pydantic's raw
    errors echo the submitted input, which may contain a password.
    """
    summary = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', 'invalid')}" for err in exc.errors()
    )
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=summary,
            )
        ).model_dump(),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with a {"code", "message"} dict as
    detail. When detail is already a structured dict, use it directly as the
    error field rather than stringifying it. Headers such as WWW-Authenticate
    are passed through.
    """
    if isinstance(exc.detail, dict):
        content = {"error": exc.detail}
    else:
        content = ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump()
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    Security note: the raw exception is written to the log only, never to the
    response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. Not throttled, not audited.
# ---------------------------------------------------------------------------


@app.get("/api/health", include_in_schema=True, tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and database reachability."""
    components = {"app": "ok"}
    try:
        request.app.state.store.execute_query("", "TEST", {})
        components["database"] = "ok"
    except Exception:
        logger.exception("Health check: database unreachable")
        components["database"] = "error"
    return HealthResponse(version=__version__, components=components)
