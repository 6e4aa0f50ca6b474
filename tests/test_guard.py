"""Unit tests for auth/guard.py -- the single authorization rule."""

import pytest

from auth.guard import Decision, authorize
from auth.models import Identity, Role

ADMIN = Identity(user_id=1, role=Role.admin)
USER = Identity(user_id=2, role=Role.user)


@pytest.mark.parametrize(
    ("identity", "allowed", "expected"),
    [
        (USER, {Role.admin}, Decision.deny),
        (ADMIN, {Role.admin}, Decision.allow),
        (ADMIN, {Role.admin, Role.user}, Decision.allow),
        (USER, {Role.admin, Role.user}, Decision.allow),
        (USER, {Role.user}, Decision.allow),
        (ADMIN, {Role.user}, Decision.deny),
        (ADMIN, set(), Decision.deny),
    ],
)
def test_authorize_truth_table(identity: Identity, allowed: set[Role], expected: Decision) -> None:
    assert authorize(identity, allowed) is expected


def test_authorize_accepts_any_collection() -> None:
    assert authorize(ADMIN, (Role.admin,)) is Decision.allow
    assert authorize(USER, frozenset({Role.admin})) is Decision.deny
