"""Unit tests for auth/tokens.py -- token service, password hashing, and login.

Covers:
- issue() then verify() returns the embedded identity
- exp is exactly iat + one hour; verify() accepts at exp, rejects after
- forged, mis-signed, and malformed tokens are InvalidTokenError
- a forged token that has also expired is reported invalid, not expired
- authenticate_user() fails identically for unknown user and wrong password
- StorageUnavailableError from the store is not masked as bad credentials
- passwords are limited to 72 UTF-8 bytes; bcrypt refusals become InvalidPasswordError
"""

import base64
import json
from unittest.mock import MagicMock

import pytest
from jose import jwt

from auth.models import Identity, Role
from auth.tokens import (
    TOKEN_TTL_SECONDS,
    TokenService,
    authenticate_user,
    check_password,
    hash_password,
    verify_password,
)
from core.errors import (
    ExpiredTokenError,
    InvalidCredentialsError,
    InvalidPasswordError,
    InvalidTokenError,
    StorageUnavailableError,
    UnauthenticatedError,
)

SECRET = "unit-test-secret-0123456789abcdef0123456789"


class FakeClock:
    """Manually advanced replacement for time.time."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tokens(clock: FakeClock) -> TokenService:
    return TokenService(SECRET, clock=clock)


def _reencode_payload(token: str, **changes) -> str:
    """Swap claims in the payload segment while keeping the original signature."""
    header, payload, signature = token.split(".")
    padded = payload + "=" * (-len(payload) % 4)
    claims = json.loads(base64.urlsafe_b64decode(padded))
    claims.update(changes)
    new_payload = base64.urlsafe_b64encode(json.dumps(claims).encode()).rstrip(b"=").decode()
    return f"{header}.{new_payload}.{signature}"


# ---------------------------------------------------------------------------
# issue / verify
# ---------------------------------------------------------------------------


class TestIssueVerify:
    def test_round_trip_returns_identity(self, tokens: TokenService) -> None:
        token = tokens.issue(7, Role.admin)
        assert tokens.verify(token) == Identity(user_id=7, role=Role.admin)

    def test_user_role_round_trip(self, tokens: TokenService) -> None:
        assert tokens.verify(tokens.issue(2, Role.user)).role is Role.user

    def test_expiry_is_exactly_one_hour(self, tokens: TokenService, clock: FakeClock) -> None:
        claims = jwt.get_unverified_claims(tokens.issue(1, Role.user))
        assert claims["iat"] == int(clock.now)
        assert claims["exp"] - claims["iat"] == TOKEN_TTL_SECONDS == 3600

    def test_accepted_at_exact_expiry(self, tokens: TokenService, clock: FakeClock) -> None:
        token = tokens.issue(1, Role.user)
        clock.advance(TOKEN_TTL_SECONDS)
        assert tokens.verify(token).user_id == 1

    def test_expired_after_one_hour(self, tokens: TokenService, clock: FakeClock) -> None:
        token = tokens.issue(1, Role.user)
        clock.advance(TOKEN_TTL_SECONDS + 1)
        with pytest.raises(ExpiredTokenError):
            tokens.verify(token)

    def test_expired_and_invalid_share_a_base_class(self) -> None:
        assert issubclass(ExpiredTokenError, UnauthenticatedError)
        assert issubclass(InvalidTokenError, UnauthenticatedError)


class TestRejectedTokens:
    def test_garbage_is_invalid(self, tokens: TokenService) -> None:
        with pytest.raises(InvalidTokenError):
            tokens.verify("not-a-token")

    def test_wrong_key_is_invalid(self, tokens: TokenService, clock: FakeClock) -> None:
        other = TokenService("another-secret-0123456789abcdef01234567", clock=clock)
        with pytest.raises(InvalidTokenError):
            tokens.verify(other.issue(1, Role.admin))

    def test_role_escalation_in_payload_is_invalid(self, tokens: TokenService) -> None:
        forged = _reencode_payload(tokens.issue(2, Role.user), role="Admin")
        with pytest.raises(InvalidTokenError):
            tokens.verify(forged)

    def test_forged_and_expired_is_invalid_not_expired(self, tokens: TokenService, clock: FakeClock) -> None:
        """Signature is checked first, so a forged token never reveals it has expired."""
        forged = _reencode_payload(tokens.issue(2, Role.user), user_id=1)
        clock.advance(TOKEN_TTL_SECONDS * 2)
        with pytest.raises(InvalidTokenError):
            tokens.verify(forged)

    def test_unknown_role_claim_is_invalid(self, tokens: TokenService, clock: FakeClock) -> None:
        now = int(clock.now)
        token = jwt.encode(
            {"sub": "1", "user_id": 1, "role": "Root", "iat": now, "exp": now + 60},
            SECRET,
            algorithm="HS256",
        )
        with pytest.raises(InvalidTokenError):
            tokens.verify(token)

    def test_missing_user_id_is_invalid(self, tokens: TokenService, clock: FakeClock) -> None:
        now = int(clock.now)
        token = jwt.encode({"role": "Admin", "iat": now, "exp": now + 60}, SECRET, algorithm="HS256")
        with pytest.raises(InvalidTokenError):
            tokens.verify(token)

    def test_none_algorithm_is_invalid(self, tokens: TokenService, clock: FakeClock) -> None:
        now = int(clock.now)
        header = base64.urlsafe_b64encode(b'{"alg":"none","typ":"JWT"}').rstrip(b"=").decode()
        body = base64.urlsafe_b64encode(
            json.dumps({"user_id": 1, "role": "Admin", "exp": now + 60}).encode()
        ).rstrip(b"=").decode()
        with pytest.raises(InvalidTokenError):
            tokens.verify(f"{header}.{body}.")

    def test_empty_secret_rejected(self) -> None:
        with pytest.raises(ValueError):
            TokenService("")


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------


class TestPasswords:
    def test_hash_verifies(self) -> None:
        hashed = hash_password("s3cret")
        assert hashed != "s3cret"
        assert verify_password("s3cret", hashed)

    def test_wrong_password_does_not_verify(self) -> None:
        assert not verify_password("nope", hash_password("s3cret"))

    def test_corrupt_hash_does_not_verify(self) -> None:
        assert not verify_password("s3cret", "not-a-bcrypt-hash")

    def test_72_byte_password_hashes(self) -> None:
        password = "p" * 72
        assert verify_password(password, hash_password(password))

    @pytest.mark.parametrize(
        "password",
        ["p" * 73, "é" * 37, ""],
        ids=["73-ascii", "74-bytes-in-37-chars", "empty"],
    )
    def test_password_outside_limit_is_rejected(self, password: str) -> None:
        with pytest.raises(InvalidPasswordError):
            check_password(password)
        with pytest.raises(InvalidPasswordError):
            hash_password(password)

    def test_bcrypt_refusal_becomes_domain_error(self, monkeypatch) -> None:
        def refuse(password: bytes, salt: bytes) -> bytes:
            raise ValueError("password cannot be longer than 72 bytes")

        monkeypatch.setattr("auth.tokens.bcrypt.hashpw", refuse)
        with pytest.raises(InvalidPasswordError):
            hash_password("short")


# ---------------------------------------------------------------------------
# authenticate_user
# ---------------------------------------------------------------------------


class TestAuthenticateUser:
    def test_valid_credentials_return_user(self, user_store) -> None:
        user = authenticate_user(user_store, "testadmin", "testpass123")
        assert user.username == "testadmin"
        assert user.role is Role.admin

    def test_login_token_verifies_to_stored_identity(self, user_store, tokens: TokenService) -> None:
        user = authenticate_user(user_store, "testuser", "userpass123")
        assert tokens.verify(tokens.issue(user.id, user.role)) == Identity(user_id=user.id, role=Role.user)

    def test_wrong_password_and_unknown_user_fail_identically(self, user_store) -> None:
        with pytest.raises(InvalidCredentialsError) as wrong_password:
            authenticate_user(user_store, "testadmin", "wrong")
        with pytest.raises(InvalidCredentialsError) as unknown_user:
            authenticate_user(user_store, "nobody", "testpass123")
        assert str(wrong_password.value) == str(unknown_user.value)

    def test_unknown_user_still_runs_bcrypt(self, user_store, monkeypatch) -> None:
        calls = []
        monkeypatch.setattr("auth.tokens.verify_password", lambda p, h: calls.append(h) or False)
        with pytest.raises(InvalidCredentialsError):
            authenticate_user(user_store, "nobody", "whatever")
        assert len(calls) == 1

    def test_storage_unavailable_propagates(self) -> None:
        store = MagicMock()
        store.get_by_username.side_effect = StorageUnavailableError("down")
        with pytest.raises(StorageUnavailableError):
            authenticate_user(store, "testadmin", "testpass123")
