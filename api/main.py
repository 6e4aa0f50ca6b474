"""
api/main.py -- FastAPI application entry point for ItemVault.

Run with:      python main.py serve
               uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds every core component (token service, user store, item store)
from Settings, hangs them off app.state, and closes them on shutdown. Nothing
is a module-level singleton, so tests can swap in isolated instances.

Error mapping: components raise the typed errors in core/errors.py. This module
is the only place that turns them into HTTP status codes.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import ExitStack, asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.items import router as items_router
from api.routes.v1.roles import router as roles_router
from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import TokenService, hash_password
from core.config import Settings, get_settings
from core.errors import (
    ForbiddenError,
    InvalidCredentialsError,
    InvalidPasswordError,
    ItemVaultError,
    NotFoundError,
    StorageFailureError,
    StorageUnavailableError,
    UnauthenticatedError,
    UserExistsError,
)
from items.backends import ItemBackend, JsonItemBackend, SqlItemBackend
from items.models import SEED_ITEMS
from items.store import ItemStore

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("itemvault.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Component wiring
# ---------------------------------------------------------------------------


def build_item_backend(settings: Settings) -> ItemBackend:
    """JSON file when ITEMS_FILE is set, otherwise the shared database."""
    if settings.items_file:
        return JsonItemBackend(settings.items_file)
    return SqlItemBackend(settings.database_url)


def default_users(settings: Settings) -> list[User]:
    return [
        User(username="admin", password_hash=hash_password(settings.seed_admin_password), role=Role.admin),
        User(username="user", password_hash=hash_password(settings.seed_user_password), role=Role.user),
    ]


# ---------------------------------------------------------------------------
# Lifespan -- startup / shutdown
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the core components on startup and release them on shutdown.

    Startup order: token service (pure config), then the user store, then the
    item store. A storage error aborts startup rather than serving requests
    against a collection that could not be loaded, and whatever was already
    opened is closed again.
    """
    settings = get_settings()
    logger.info("ItemVault API starting up")
    app.state.tokens = TokenService(settings.secret_key)

    with ExitStack() as stack:
        user_store = UserStore(settings.database_url)
        stack.callback(user_store.close)
        # Hash the default passwords only when they are about to be written.
        if settings.seed_defaults and not user_store.has_users():
            user_store.seed_defaults(default_users(settings))
        app.state.user_store = user_store

        backend = build_item_backend(settings)
        stack.callback(backend.close)
        app.state.items = ItemStore(backend, seed=SEED_ITEMS if settings.seed_defaults else ())
        logger.info("Stores initialized (items backend=%s)", type(backend).__name__)

        yield

    logger.info("ItemVault API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="ItemVault API",
    description="Role-gated item records with token authentication.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


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
app.include_router(items_router, prefix="/api/v1", tags=["Items"])
app.include_router(roles_router, prefix="/api/v1", tags=["Roles"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------

# (status, code, fixed message). A fixed message replaces str(exc) where the
# exception text must not reach the client.
_DOMAIN_ERRORS: dict[type[ItemVaultError], tuple[int, str, str | None]] = {
    InvalidCredentialsError: (401, "invalid_credentials", "Invalid username or password."),
    UnauthenticatedError: (401, "unauthorized", "Authentication required."),
    ForbiddenError: (403, "forbidden", None),
    InvalidPasswordError: (422, "invalid_password", None),
    NotFoundError: (404, "not_found", None),
    UserExistsError: (409, "conflict", None),
    StorageUnavailableError: (503, "storage_unavailable", "Storage is temporarily unavailable."),
    StorageFailureError: (500, "storage_failure", "The change could not be saved."),
}


def _lookup_domain_error(exc: ItemVaultError) -> tuple[int, str, str | None]:
    for cls in type(exc).__mro__:
        if cls in _DOMAIN_ERRORS:
            return _DOMAIN_ERRORS[cls]
    return 500, "internal_error", "An unexpected error occurred."


@app.exception_handler(ItemVaultError)
async def domain_error_handler(request: Request, exc: ItemVaultError) -> JSONResponse:
    """Map a typed domain error onto its HTTP status and the error envelope."""
    status_code, code, message = _lookup_domain_error(exc)
    if status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    response = JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message or str(exc))).model_dump(),
    )
    if status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


# Keys of a pydantic error dict that are safe to echo. "input" and "ctx" carry
# the submitted value, which for a login body is the password.
_VALIDATION_ERROR_KEYS = ("type", "loc", "msg")


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or path params fail validation."""
    errors = [{k: v for k, v in err.items() if k in _VALIDATION_ERROR_KEYS} for err in exc.errors()]
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(errors),
            )
        ).model_dump(),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for FastAPI/Starlette HTTP exceptions (e.g. 404 on unknown paths)."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
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
# regardless of router registration state. No auth and no rate limit.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness plus a cheap probe of the user database."""
    components = {"app": "ok"}
    try:
        request.app.state.user_store.has_users()
        components["database"] = "ok"
    except StorageUnavailableError:
        components["database"] = "error"
    return HealthResponse(version=VERSION, components=components)
