"""
auth/tokens.py -- Token service and password hashing.

Security design decisions:
  Tokens: python-jose with HS256. Tokens are signed with the process-wide
       SECRET_KEY and carry user_id, role, iat and exp. exp is always exactly
       iat + TOKEN_TTL_SECONDS (one hour). There is no revocation list: a
       leaked token stays valid until it expires.

  Verification order: signature and structure are checked BEFORE expiry, so a
       forged token is always reported as invalid and never leaks whether it
       "merely" expired. Both outcomes surface as UnauthenticatedError
       subclasses; the API layer turns either into the same 401.

  Passwords: bcrypt directly (no passlib wrapper). Bcrypt's cost factor makes
       brute-forcing low-entropy secrets expensive. The _DUMMY_HASH constant
       enables timing equalization in authenticate_user() so response time
       does not reveal whether a username exists.

Layer rule: no imports from api/ or items/. Import from core/ is allowed --
core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import Identity, Role
from core.config import MAX_PASSWORD_BYTES
from core.errors import ExpiredTokenError, InvalidCredentialsError, InvalidPasswordError, InvalidTokenError

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("itemvault.auth")

_ALGORITHM = "HS256"

TOKEN_TTL_SECONDS = 60 * 60

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def check_password(plain: str) -> None:
    """Raise InvalidPasswordError unless plain is 1..MAX_PASSWORD_BYTES bytes of UTF-8."""
    if not plain:
        raise InvalidPasswordError("Password must not be empty.")
    if len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise InvalidPasswordError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Current bcrypt releases refuse passwords over 72 bytes instead of
    truncating them, so the length is checked up front and any remaining
    refusal from bcrypt is reported the same way.
    """
    check_password(plain)
    try:
        return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")
    except ValueError as exc:
        raise InvalidPasswordError(str(exc)) from exc


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Corrupt or non-bcrypt hash in storage
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("itemvault_timing_dummy")


# ---------------------------------------------------------------------------
# Token service
# ---------------------------------------------------------------------------


class TokenService:
    """Issues and verifies signed, time-limited access tokens.

    One instance is built at startup from Settings.secret_key and shared by
    every request. It holds no mutable state, so concurrent use needs no lock.

    Usage:
        tokens = TokenService(secret_key)
        token = tokens.issue(user_id=1, role=Role.admin)
        identity = tokens.verify(token)   # Identity(user_id=1, role=Role.admin)

    Args:
        secret_key: HS256 signing key. Never rotated while the process runs.
        clock:      Returns the current Unix time. Injected by tests to move
                    time forward without sleeping.
    """

    def __init__(self, secret_key: str, clock: Callable[[], float] = time.time) -> None:
        if not secret_key:
            raise ValueError("TokenService requires a non-empty secret key.")
        self._secret_key = secret_key
        self._clock = clock

    def issue(self, user_id: int, role: Role) -> str:
        """Encode a signed token for the given identity, valid for one hour."""
        issued_at = int(self._clock())
        payload = {
            "sub": str(user_id),
            "user_id": user_id,
            "role": Role(role).value,
            "iat": issued_at,
            "exp": issued_at + TOKEN_TTL_SECONDS,
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str) -> Identity:
        """Verify a token and return the identity it carries.

        Raises:
            InvalidTokenError: structure, signature, or claims are wrong.
            ExpiredTokenError: signature is good but now > exp.
        """
        try:
            # Expiry is checked below against the injected clock, after the
            # signature has already been accepted here.
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            raise InvalidTokenError("Token signature or structure is invalid.") from exc

        user_id = payload.get("user_id")
        expires_at = payload.get("exp")
        if not isinstance(user_id, int) or not isinstance(expires_at, int):
            raise InvalidTokenError("Token is missing required claims.")
        try:
            role = Role(payload.get("role"))
        except ValueError as exc:
            raise InvalidTokenError("Token carries an unknown role.") from exc

        if self._clock() > expires_at:
            raise ExpiredTokenError("Token has expired.")
        return Identity(user_id=user_id, role=role)


# ---------------------------------------------------------------------------
# User authentication (constant-time)
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, username: str, password: str) -> User:
    """Authenticate a username/password login with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown username: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Raises InvalidCredentialsError for both, with the same message.
    StorageUnavailableError from the store propagates unchanged so the caller
    can tell "wrong credentials" from "could not check".
    """
    user = store.get_by_username(username)
    if user is None:
        # Equalize timing -- do NOT return early before running bcrypt
        verify_password(password, _DUMMY_HASH)
        raise InvalidCredentialsError("Invalid username or password.")
    if not verify_password(password, user.password_hash):
        raise InvalidCredentialsError("Invalid username or password.")
    return user
