"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the
Authenticator do the work; these only own the shape.

UserStore builds instances through injected types (user_cls, role_cls,
token_cls), so a deployment may subclass any of these to carry extra fields
without touching the store or the Authenticator.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """An account that can log in with a password or a remember-me cookie.

    The unique login key is picked by value: strings containing "@" are
    matched against email, everything else against username.

    hashed_password is a bcrypt hash. None means the account can only be
    entered via force_login() (e.g. provisioned but never given a password).
    """

    username: str
    id: int | None = None
    email: str | None = None
    hashed_password: str | None = None
    logins: int = 0
    last_login: str | None = None  # ISO 8601, stamped by complete_login
    created_at: str | None = None


@dataclass
class Role:
    """Named permission group. "login" is the sentinel required for any login."""

    name: str
    id: int | None = None
    description: str | None = None


@dataclass
class AutoLoginToken:
    """A remember-me token bound to one user on one device.

    token is regenerated every time the row is used for auto-login, so a
    copied cookie is good for at most one request before it goes stale.
    user_agent is a one-way fingerprint of the User-Agent header seen when
    the token was issued. expires is epoch seconds and is never extended by
    rotation.
    """

    user_id: int
    expires: int
    user_agent: str
    token: str = ""
    id: int | None = None
    created: int | None = None
