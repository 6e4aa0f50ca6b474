"""
auth/guard.py -- The single authorization check.

Every route that needs a role goes through authorize() (via
auth.dependencies.require_roles). There is exactly one implementation of the
rule, so there is exactly one place to test it.

Pure function: no I/O, no logging, no clock.
"""

from __future__ import annotations

from collections.abc import Collection
from enum import Enum

from auth.models import Identity, Role


class Decision(str, Enum):
    allow = "allow"
    deny = "deny"


def authorize(identity: Identity, allowed_roles: Collection[Role]) -> Decision:
    """Allow iff the identity's role is one of allowed_roles."""
    return Decision.allow if identity.role in allowed_roles else Decision.deny
