"""Tests for the admin CLI in main.py.

Each test points --db at a fresh SQLite file under tmp_path and drives
main() in-process, then inspects the database through UserStore.
"""

from __future__ import annotations

import time

import pytest

from auth.models import AutoLoginToken
from auth.store import UserStore
from auth.tokens import verify_password
from core.config import get_settings
from main import main


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'cli.db'}"


def _store(db_url: str) -> UserStore:
    return UserStore(db_url=db_url)


def test_create_user_with_roles(db_url: str, capsys) -> None:
    assert main(["--db", db_url, "create-role", "login"]) == 0
    assert main(["--db", db_url, "create-role", "admin", "--description", "Administrative user"]) == 0
    assert main(["--db", db_url, "create-user", "alice", "--password", "pw123456", "--role", "login", "--role", "admin"]) == 0
    assert "Created user 'alice'" in capsys.readouterr().out

    store = _store(db_url)
    try:
        user = store.get_by_username("alice")
        assert verify_password("pw123456", user.hashed_password)
        assert [r.name for r in store.get_user_roles(user.id)] == ["admin", "login"]
    finally:
        store.close()


def test_create_user_unknown_role_creates_nothing(db_url: str, capsys) -> None:
    assert main(["--db", db_url, "create-user", "bob", "--password", "pw", "--role", "ghost"]) == 1
    assert "Unknown role 'ghost'" in capsys.readouterr().out

    store = _store(db_url)
    try:
        assert store.get_by_username("bob") is None
    finally:
        store.close()


def test_duplicate_role(db_url: str, capsys) -> None:
    main(["--db", db_url, "create-role", "login"])
    assert main(["--db", db_url, "create-role", "login"]) == 1
    assert "already exists" in capsys.readouterr().out


def test_grant_and_revoke(db_url: str) -> None:
    main(["--db", db_url, "create-role", "editor"])
    main(["--db", db_url, "create-user", "carol", "--password", "pw"])

    assert main(["--db", db_url, "grant", "carol", "editor"]) == 0
    assert main(["--db", db_url, "grant", "carol", "editor"]) == 0
    store = _store(db_url)
    try:
        assert [r.name for r in store.get_user_roles(store.get_by_username("carol").id)] == ["editor"]
    finally:
        store.close()

    assert main(["--db", db_url, "revoke", "carol", "editor"]) == 0
    assert main(["--db", db_url, "grant", "nobody", "editor"]) == 1
    assert main(["--db", db_url, "grant", "carol", "ghost"]) == 1


def test_logout_all_and_purge(db_url: str, capsys) -> None:
    main(["--db", db_url, "create-user", "dana", "--password", "pw"])
    store = _store(db_url)
    try:
        uid = store.get_by_username("dana").id
        now = int(time.time())
        store.create_token(AutoLoginToken(user_id=uid, expires=now + 60, user_agent="a"))
        store.create_token(AutoLoginToken(user_id=uid, expires=now - 60, user_agent="b"))
    finally:
        store.close()

    assert main(["--db", db_url, "purge-tokens"]) == 0
    assert "Purged 1 expired token(s)" in capsys.readouterr().out

    assert main(["--db", db_url, "logout-all", "dana"]) == 0
    assert "Removed 1 remember-me token(s)" in capsys.readouterr().out

    assert main(["--db", db_url, "logout-all", "nobody"]) == 1


def test_db_option_after_subcommand(db_url: str) -> None:
    assert main(["create-role", "login", "--db", db_url]) == 0
    assert main(["create-user", "erin", "--password", "pw", "--db", db_url]) == 0
    assert main(["grant", "--db", db_url, "erin", "login"]) == 0

    store = _store(db_url)
    try:
        assert [r.name for r in store.get_user_roles(store.get_by_username("erin").id)] == ["login"]
    finally:
        store.close()


@pytest.fixture
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_bad_configuration_reports_error(monkeypatch: pytest.MonkeyPatch, fresh_settings, capsys) -> None:
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.delenv("SECRET_KEY", raising=False)

    assert main(["purge-tokens"]) == 1
    out = capsys.readouterr().out
    assert "[!] Invalid configuration" in out
    assert "SECRET_KEY" in out
