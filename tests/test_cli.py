"""Tests for the main.py command line: create-user provisioning."""

import pytest

import main
from auth.models import Role
from auth.store import UserStore
from auth.tokens import verify_password
from core.config import get_settings


@pytest.fixture
def db_url(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    get_settings.cache_clear()
    yield url
    get_settings.cache_clear()


def _answers(monkeypatch, *replies):
    it = iter(replies)
    monkeypatch.setattr(main.getpass, "getpass", lambda prompt="": next(it))


def test_create_user_command(db_url, monkeypatch, capsys):
    _answers(monkeypatch, "hunter22", "hunter22")
    assert main.main(["create-user", "carol", "--role", "Admin"]) == 0
    assert "carol" in capsys.readouterr().out

    store = UserStore(db_url)
    try:
        user = store.get_by_username("carol")
    finally:
        store.close()
    assert user.role is Role.admin
    assert verify_password("hunter22", user.password_hash)


def test_role_defaults_to_user(db_url, monkeypatch):
    _answers(monkeypatch, "pw", "pw")
    assert main.main(["create-user", "dave"]) == 0
    store = UserStore(db_url)
    try:
        assert store.get_by_username("dave").role is Role.user
    finally:
        store.close()


def test_duplicate_user_exits_nonzero(db_url, monkeypatch, capsys):
    _answers(monkeypatch, "pw", "pw", "pw", "pw")
    assert main.main(["create-user", "erin"]) == 0
    assert main.main(["create-user", "erin"]) == 1
    assert "already exists" in capsys.readouterr().out


def test_mismatched_passwords_abort(db_url, monkeypatch):
    _answers(monkeypatch, "one", "two")
    with pytest.raises(SystemExit):
        main.main(["create-user", "frank"])


def test_unknown_role_rejected(db_url):
    with pytest.raises(SystemExit):
        main.main(["create-user", "gina", "--role", "Root"])


def test_longest_password_can_log_in(db_url, monkeypatch):
    password = "p" * 72
    _answers(monkeypatch, password, password)
    assert main.main(["create-user", "hank"]) == 0
    store = UserStore(db_url)
    try:
        assert verify_password(password, store.get_by_username("hank").password_hash)
    finally:
        store.close()


@pytest.mark.parametrize("password", ["p" * 73, "p" * 80, "é" * 37, ""])
def test_unusable_password_is_refused(db_url, monkeypatch, capsys, password):
    _answers(monkeypatch, password, password)
    assert main.main(["create-user", "ivan"]) == 1
    assert "[!]" in capsys.readouterr().out
    store = UserStore(db_url)
    try:
        assert store.get_by_username("ivan") is None
    finally:
        store.close()
