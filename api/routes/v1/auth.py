"""
api/routes/v1/auth.py -- Login and identity endpoints.

Routes:
  POST /api/v1/auth/login   -- password login; returns a bearer token (public)
  GET  /api/v1/auth/me      -- identity carried by the caller's token (any role)

Security:
  POST /login is rate-limited per client IP (Settings.login_rate_limit).
  authenticate_user() provides timing equalization -- use it, never inline.
  Unknown username and wrong password produce the same 401 body.
  Cache-Control: no-store on login responses.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, LoginRequest, LoginResponse, MeResponse
from auth.dependencies import get_identity
from auth.models import Identity
from auth.store import UserStore
from auth.tokens import TOKEN_TTL_SECONDS, TokenService, authenticate_user
from core.config import get_settings
from core.errors import InvalidCredentialsError

logger = logging.getLogger("itemvault.api")

_settings = get_settings()

router = APIRouter()


@limiter.limit(_settings.login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, response: Response, body: LoginRequest) -> LoginResponse | JSONResponse:
    """Authenticate with username and password; return a one-hour bearer token.

    StorageUnavailableError from the user store is not caught here -- the
    exception handler turns it into a 503 so clients can retry later instead
    of assuming their password is wrong.
    """
    user_store: UserStore = request.app.state.user_store
    tokens: TokenService = request.app.state.tokens

    try:
        user = authenticate_user(user_store, body.username, body.password)
    except InvalidCredentialsError as exc:
        logger.info("Failed login for %r", body.username)
        resp = JSONResponse(
            status_code=401,
            content=ErrorResponse(error=ErrorDetail(code="invalid_credentials", message=str(exc))).model_dump(),
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    response.headers["Cache-Control"] = "no-store"
    return LoginResponse(
        access_token=tokens.issue(user.id, user.role),
        token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
        expires_in=TOKEN_TTL_SECONDS,
        username=user.username,
        role=user.role,
    )


@router.get("/auth/me", response_model=MeResponse)
def me(identity: Identity = Depends(get_identity)) -> MeResponse:
    """Return the identity encoded in the caller's token."""
    return MeResponse(user_id=identity.user_id, role=identity.role)
