"""
auth/session.py -- Session and cookie adapters handed to the Authenticator.

The Authenticator never reaches for request globals. It is given:
  SessionStore -- get/set/delete/destroy over any mutable mapping. In the app
                  that mapping is Starlette's request.session (a signed cookie
                  written by SessionMiddleware); in tests a plain dict.
  CookieJar    -- get/set/delete over the request's incoming cookies. Writes
                  go to a Starlette Response as Set-Cookie headers and are
                  also reflected locally, so a get() after set()/delete() in
                  the same request sees the new state.

Cookie flags:
  httponly=True: JS cannot read the auto-login token (XSS mitigation).
  samesite="lax": not sent on cross-site POST -- CSRF mitigation.
  secure: only sent over HTTPS when SECURE_COOKIES=true.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from collections.abc import Mapping, MutableMapping
from typing import Any

from starlette.responses import Response

AUTOLOGIN_COOKIE = "authautologin"


class SessionStore:
    """Key/value view over the request session."""

    def __init__(self, data: MutableMapping[str, Any]) -> None:
        self._data = data

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def destroy(self) -> None:
        """Drop every key. SessionMiddleware then expires the session cookie."""
        self._data.clear()


class CookieJar:
    """Request cookies in, Set-Cookie headers out.

    Usage:
        jar = CookieJar(request.cookies, response, secure=settings.secure_cookies)
        jar.set("authautologin", value, ttl_seconds)
    """

    def __init__(
        self,
        incoming: Mapping[str, str],
        response: Response | None = None,
        secure: bool = False,
    ) -> None:
        self._cookies: dict[str, str] = dict(incoming)
        self._response = response
        self._secure = secure

    def get(self, name: str) -> str | None:
        return self._cookies.get(name) or None

    def set(self, name: str, value: str, ttl: int) -> None:
        """Set a cookie that the browser drops after ttl seconds."""
        self._cookies[name] = value
        if self._response is not None:
            self._response.set_cookie(
                name,
                value=value,
                max_age=ttl,
                httponly=True,
                samesite="lax",
                secure=self._secure,
            )

    def delete(self, name: str) -> None:
        self._cookies.pop(name, None)
        if self._response is not None:
            self._response.delete_cookie(name, httponly=True, samesite="lax", secure=self._secure)

    def as_dict(self) -> dict[str, str]:
        """Cookies as the client will hold them after this response."""
        return dict(self._cookies)
