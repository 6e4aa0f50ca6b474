"""
api/routes/v1/roles.py -- Role check endpoints.

  GET /api/v1/admin -- Admin only
  GET /api/v1/user  -- Admin or User

Clients call these to find out whether a token grants a given role without
attempting a write.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from api.models import MessageResponse
from auth.dependencies import require_admin, require_any_role
from auth.models import Identity

router = APIRouter()


@router.get("/admin", response_model=MessageResponse)
def admin_welcome(identity: Identity = Depends(require_admin)) -> MessageResponse:
    return MessageResponse(message="Welcome, Admin!")


@router.get("/user", response_model=MessageResponse)
def user_welcome(identity: Identity = Depends(require_any_role)) -> MessageResponse:
    return MessageResponse(message="Welcome, User!")
