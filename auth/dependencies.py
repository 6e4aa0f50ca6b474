"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Tokens arrive as an `Authorization: Bearer <token>` header. The token service
hung off app.state by the lifespan hook turns that into an Identity.

get_identity() raises UnauthenticatedError (401) if the header is missing or
the token does not verify.
require_roles(*roles) builds a dependency that additionally runs the guard and
raises ForbiddenError (403) on a deny decision.

Both raise domain errors, not HTTPException; api/main.py owns the mapping to
status codes.

Layer rule: no imports from api/ or items/.
  auth/dependencies.py may import from fastapi (for Depends/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import Depends, Request

from auth.guard import Decision, authorize
from auth.models import Identity, Role
from auth.tokens import TokenService
from core.errors import ExpiredTokenError, ForbiddenError, InvalidTokenError, UnauthenticatedError

logger = logging.getLogger("itemvault.auth")


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_identity(request: Request) -> Identity:
    """Require authentication. Raises UnauthenticatedError if there is no valid token.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: Identity = Depends(get_identity)): ...

    Expired and invalid tokens are logged separately but reported to the
    client identically.
    """
    token = _bearer_token(request)
    if token is None:
        raise UnauthenticatedError("Access token is missing.")

    tokens: TokenService = request.app.state.tokens
    try:
        return tokens.verify(token)
    except ExpiredTokenError:
        logger.info("Rejected expired token on %s %s", request.method, request.url.path)
        raise
    except InvalidTokenError:
        logger.warning("Rejected invalid token on %s %s", request.method, request.url.path)
        raise


def require_roles(*roles: Role) -> Callable[..., Identity]:
    """Build a dependency that requires one of the given roles.

    Use as a FastAPI dependency:
        @router.post("/admin-only")
        def route(identity: Identity = Depends(require_roles(Role.admin))): ...
    """
    allowed = frozenset(roles)

    def dependency(identity: Identity = Depends(get_identity)) -> Identity:
        if authorize(identity, allowed) is Decision.deny:
            raise ForbiddenError("Access denied.")
        return identity

    return dependency


require_admin = require_roles(Role.admin)
require_any_role = require_roles(Role.admin, Role.user)
