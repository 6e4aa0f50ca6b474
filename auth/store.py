"""
auth/store.py -- SQLAlchemy Core persistence layer for user credentials.

Pattern: Repository + Data Mapper (same as items/backends.py).
UserStore is the repository; _row_to_user is the mapper.
Route and dependency code never touches SQL directly.

Failure semantics:
  "No such user" is a normal result (None). Any database error is raised as
  StorageUnavailableError so the login route can tell "wrong username" from
  "can't check right now".

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or items/.
"""

from __future__ import annotations

import logging

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import Role, User
from core.database import make_engine
from core.errors import StorageUnavailableError, UserExistsError

logger = logging.getLogger("itemvault.auth")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("role", String(30), nullable=False, server_default=Role.user.value),
)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore("sqlite:///itemvault.db")
        store.create_user(User(username="admin", role=Role.admin, password_hash=hash_password("secret")))
        user = store.get_by_username("admin")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = make_engine(db_url)
        try:
            _metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            self.engine.dispose()
            raise StorageUnavailableError(f"Could not open user database: {exc}") from exc

    def has_users(self) -> bool:
        """Return True if at least one user record exists."""
        try:
            with self.engine.connect() as conn:
                result = conn.execute(select(func.count()).select_from(_users)).scalar()
        except SQLAlchemyError as exc:
            raise StorageUnavailableError("User database is unavailable.") from exc
        return (result or 0) > 0

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises UserExistsError if the username is already taken.
        """
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    _users.insert().values(
                        username=user.username,
                        password_hash=user.password_hash,
                        role=Role(user.role).value,
                    )
                )
                return result.inserted_primary_key[0]
        except IntegrityError as exc:
            raise UserExistsError(f"User {user.username!r} already exists.") from exc
        except SQLAlchemyError as exc:
            raise StorageUnavailableError("User database is unavailable.") from exc

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        return self._fetch_one(_users.select().where(_users.c.username == username))

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        return self._fetch_one(_users.select().where(_users.c.id == user_id))

    def seed_defaults(self, users: list[User]) -> int:
        """Insert the given users if the table is empty. Returns how many were added.

        Runs once at startup; a table that already has any user is left alone.
        """
        if self.has_users():
            return 0
        for user in users:
            user.id = self.create_user(user)
        logger.info("Seeded %d default users", len(users))
        return len(users)

    def close(self) -> None:
        self.engine.dispose()

    def _fetch_one(self, query) -> User | None:
        try:
            with self.engine.connect() as conn:
                row = conn.execute(query).fetchone()
        except SQLAlchemyError as exc:
            logger.error("User lookup failed: %s", exc)
            raise StorageUnavailableError("User database is unavailable.") from exc
        return _row_to_user(row) if row is not None else None


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        password_hash=row.password_hash,
        role=Role(row.role),
    )
