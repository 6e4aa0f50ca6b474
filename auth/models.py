"""
auth/models.py -- Domain types for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors items/models.py
-- dataclasses own domain shape; stores and the token service do the work.

Layer rule: no imports from api/ or items/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Permission class carried by every user and every token.

    Values are the exact strings persisted in the users table and embedded in
    the token's role claim.
    """

    admin = "Admin"
    user = "User"


@dataclass
class User:
    """A stored login identity.

    Created by the seed step or the provisioning CLI, never mutated or deleted
    at request time. password_hash is a bcrypt hash; the plaintext is never kept.
    """

    username: str
    password_hash: str
    role: Role
    id: int | None = None  # None until written to the users table


@dataclass(frozen=True)
class Identity:
    """The {user_id, role} pair extracted from a verified token."""

    user_id: int
    role: Role
