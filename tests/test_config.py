"""Unit tests for core/config.py -- Settings validation.

Settings is instantiated directly (not via get_settings) with
_env_file=None so a developer's local .env cannot leak into the results.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings


def test_debug_generates_secret(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SECRET_KEY", raising=False)
    s = Settings(_env_file=None, debug=True)
    assert len(s.secret_key) >= 32


def test_production_requires_secret(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SECRET_KEY", raising=False)
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings(_env_file=None, debug=False)


def test_short_secret_rejected() -> None:
    with pytest.raises(ValidationError, match="at least 32"):
        Settings(_env_file=None, debug=False, secret_key="short")


def test_lifetime_must_be_positive() -> None:
    with pytest.raises(ValidationError, match="AUTH_LIFETIME"):
        Settings(_env_file=None, debug=True, auth_lifetime=0)


def test_defaults() -> None:
    s = Settings(_env_file=None, debug=True)
    assert s.auth_lifetime == 14 * 24 * 60 * 60
    assert s.auth_session_key == "auth_user"
    assert s.login_rate_limit == "10/minute"


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AUTH_LIFETIME", "600")
    monkeypatch.setenv("SECURE_COOKIES", "true")
    s = Settings(_env_file=None, debug=True)
    assert s.auth_lifetime == 600
    assert s.secure_cookies is True
