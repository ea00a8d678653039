"""
auth/service.py -- Session login, remember-me auto-login, and role checks.

One Authenticator is built per request (see auth/dependencies.get_auth) from
a UserStore, a SessionStore, a CookieJar and the request's User-Agent. It
holds no state of its own between requests.

Remember-me protocol:
  login(remember=True) issues a token row (expires = now + lifetime, UA
  fingerprint of this request) and sets the authautologin cookie.

  auto_login() on a later request:
    no cookie                 -> None
    no live row / no user     -> None, stale cookie deleted
    UA fingerprint mismatch   -> None, row deleted (burned), cookie deleted
    match                     -> token value rotated on the same row, cookie
                                 re-set with the remaining lifetime, session
                                 completed, User returned

  A burned token stays burned: the legitimate device loses its remember-me
  too and has to log in with a password again.

  logout() deletes the cookie before touching the DB, then deletes the
  token row (or every row for the user with logout_all=True).

Outcomes of normal auth flows (bad password, unknown role, dead token) are
returned as False / None. Store and session failures propagate.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from typing import Any, Union

from auth.models import AutoLoginToken, Role, User
from auth.session import AUTOLOGIN_COOKIE, CookieJar, SessionStore
from auth.store import UserStore
from auth.tokens import _DUMMY_HASH, fingerprint_user_agent, fingerprints_match, verify_password

logger = logging.getLogger("authgate.auth")

LOGIN_ROLE = "login"
FORCED_KEY = "auth_forced"

DEFAULT_LIFETIME = 14 * 24 * 60 * 60

# A unique-key string (username or email) or an already-loaded User.
Identity = Union[str, User]
# A role name, a Role, or an iterable mixing both.
RoleArg = Union[str, Role, Iterable[Union[str, Role]]]


class Authenticator:
    """Request-scoped auth driver over injected store, session and cookies."""

    def __init__(
        self,
        store: UserStore,
        session: SessionStore,
        cookies: CookieJar,
        user_agent: str | None = "",
        lifetime: int = DEFAULT_LIFETIME,
        session_key: str = "auth_user",
    ) -> None:
        self.store = store
        self.session = session
        self.cookies = cookies
        self.user_agent = user_agent or ""
        self.lifetime = lifetime
        self.session_key = session_key

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def resolve(self, identity: Identity) -> User | None:
        """Turn a username/email or a User into a loaded User, or None."""
        if isinstance(identity, User):
            return identity
        return self.store.get_by_unique_key(identity)

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self, identity: Identity, password: str, remember: bool = False) -> bool:
        """Log a user in with a password. Requires the "login" role.

        Always runs bcrypt, even for an unknown user, so response time does
        not reveal whether the username exists.
        """
        if not password:
            return False

        user = self.resolve(identity)
        if user is None or user.hashed_password is None:
            verify_password(password, _DUMMY_HASH)
            logger.info("Login failed: unknown user or no password set")
            return False

        if not verify_password(password, user.hashed_password):
            logger.info("Login failed: bad password (user_id=%s)", user.id)
            return False

        if not self._has_login_role(user):
            logger.info("Login refused: user_id=%s lacks the %r role", user.id, LOGIN_ROLE)
            return False

        if remember:
            self._remember(user)

        self.complete_login(user)
        return True

    def force_login(self, identity: Identity, mark_forced: bool = False) -> User | None:
        """Log a user in without a password or role check.

        For admin impersonation and post-registration sign-in. With
        mark_forced the session is flagged so account-editing routes can
        refuse to run. Returns None, changing nothing, if the identity does
        not resolve.
        """
        user = self.resolve(identity)
        if user is None:
            return None

        if mark_forced:
            self.session.set(FORCED_KEY, True)

        self.complete_login(user)
        return user

    def complete_login(self, user: User) -> bool:
        """Record the login on the user row and put the user into the session."""
        self.store.complete_login(user)
        self.session.set(self.session_key, {"id": user.id, "username": user.username})
        return True

    def _remember(self, user: User) -> AutoLoginToken:
        token = self.store.create_token(
            self.store.token_cls(
                user_id=user.id,
                expires=int(time.time()) + self.lifetime,
                user_agent=fingerprint_user_agent(self.user_agent),
            )
        )
        self.cookies.set(AUTOLOGIN_COOKIE, token.token, self.lifetime)
        return token

    # ------------------------------------------------------------------
    # Auto-login
    # ------------------------------------------------------------------

    def auto_login(self) -> User | None:
        """Log in from the authautologin cookie, rotating the token on success."""
        value = self.cookies.get(AUTOLOGIN_COOKIE)
        if not value:
            return None

        token = self.store.get_token(value)
        user = self.store.get_by_id(token.user_id) if token is not None else None
        if token is None or user is None:
            # Store errors raise rather than land here, so the cookie is dead for sure.
            self.cookies.delete(AUTOLOGIN_COOKIE)
            return None

        if not fingerprints_match(token.user_agent, self.user_agent):
            logger.warning(
                "Auto-login token %s presented by a different user agent; token deleted (user_id=%s)",
                token.id,
                token.user_id,
            )
            self.store.delete_token(token.id)
            self.cookies.delete(AUTOLOGIN_COOKIE)
            return None

        token = self.store.regenerate_token(token)
        self.cookies.set(AUTOLOGIN_COOKIE, token.token, max(token.expires - int(time.time()), 0))
        self.complete_login(user)
        return user

    def get_user(self, default: Any = None) -> User | Any:
        """Return the logged-in user, trying auto-login if the session has none."""
        entry = self.session.get(self.session_key)
        if entry:
            user = self.store.get_by_id(entry["id"])
            if user is not None:
                return user

        user = self.auto_login()
        if user is None:
            return default
        return user

    # ------------------------------------------------------------------
    # Logout
    # ------------------------------------------------------------------

    def logout(self, destroy: bool = False, logout_all: bool = False) -> bool:
        """Log out and remove the auto-login token. Returns True if no one is logged in afterwards.

        destroy clears the whole session instead of just the user entry.
        logout_all deletes every auto-login token the user owns, signing out
        all remembered devices.
        """
        self.session.delete(FORCED_KEY)

        value = self.cookies.get(AUTOLOGIN_COOKIE)
        if value:
            # Cookie goes first so a DB failure below cannot leave it usable.
            self.cookies.delete(AUTOLOGIN_COOKIE)

            token = self.store.get_token(value)
            if token is not None and logout_all:
                removed = self.store.delete_user_tokens(token.user_id)
                logger.info("Logged out all devices for user_id=%s (%d tokens removed)", token.user_id, removed)
            elif token is not None:
                self.store.delete_token(token.id)

        if destroy:
            self.session.destroy()
        else:
            self.session.delete(self.session_key)

        return not self.logged_in()

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def logged_in(self, role: RoleArg | None = None) -> bool:
        """Is someone logged in, and do they hold every role in `role`?

        role may be a name, a Role, or an iterable of either. Any name that
        does not match an existing Role row makes the check fail.
        """
        user = self.get_user()
        if user is None:
            return False

        if not role:
            return True

        roles = self._resolve_roles(role)
        if roles is None:
            return False

        return self.store.user_has_roles(user.id, [r.id for r in roles])

    def _resolve_roles(self, role: RoleArg) -> list[Role] | None:
        if isinstance(role, Role):
            return [role]

        if isinstance(role, str):
            found = self.store.get_role_by_name(role)
            return [found] if found is not None else None

        items = list(role)
        names = {r for r in items if isinstance(r, str)}
        resolved = self.store.get_roles_by_names(names)
        if len(resolved) != len(names):
            return None
        return resolved + [r for r in items if isinstance(r, Role)]

    def _has_login_role(self, user: User) -> bool:
        role = self.store.get_role_by_name(LOGIN_ROLE)
        return role is not None and self.store.user_has_roles(user.id, [role.id])

    def is_forced(self) -> bool:
        return bool(self.session.get(FORCED_KEY, False))

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    def check_password(self, password: str) -> bool:
        """Check a candidate password against the current user's stored hash."""
        user = self.get_user()
        if user is None or not user.hashed_password:
            return False
        return verify_password(password, user.hashed_password)

    def password(self, identity: Identity) -> str | None:
        """Return the stored password hash for a user, or None if unknown."""
        user = self.resolve(identity)
        if user is None:
            return None
        return user.hashed_password
