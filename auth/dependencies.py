"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

get_auth() builds the request-scoped Authenticator. FastAPI caches it per
request, so every dependency and the route itself share one instance.
Cookies it sets (a rotated auto-login token, for example) land on the
dependency Response, which FastAPI merges into the final response -- routes
that use it must return data, not a Response object. The same Response is
kept on request.state.auth_response so the API error handlers can copy its
Set-Cookie headers onto the error responses they build.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.
require_roles() builds a dependency that raises HTTP 403 unless the user
holds every named role.

Layer rule: auth/dependencies.py may import from fastapi and core/ because
it is the bridge between the Authenticator and the HTTP layer.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, HTTPException, Request, Response

from auth.models import User
from auth.service import Authenticator
from auth.session import CookieJar, SessionStore
from core.config import get_settings


def get_auth(request: Request, response: Response) -> Authenticator:
    """Wire the Authenticator to this request's store, session, cookies and User-Agent."""
    settings = get_settings()
    request.state.auth_response = response
    return Authenticator(
        store=request.app.state.user_store,
        session=SessionStore(request.session),
        cookies=CookieJar(request.cookies, response, secure=settings.secure_cookies),
        user_agent=request.headers.get("user-agent", ""),
        lifetime=settings.auth_lifetime,
        session_key=settings.auth_session_key,
    )


def try_get_current_user(auth: Authenticator = Depends(get_auth)) -> User | None:
    """Return the session user (falling back to auto-login), or None."""
    return auth.get_user()


def get_current_user(user: User | None = Depends(try_get_current_user)) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user


def require_roles(*roles: str) -> Callable[..., User]:
    """Build a dependency that requires every one of `roles`.

    Use as a FastAPI dependency:
        @router.post("/admin-only")
        def route(user: User = Depends(require_roles("admin"))): ...
    """

    def dependency(
        user: User = Depends(get_current_user),
        auth: Authenticator = Depends(get_auth),
    ) -> User:
        if not auth.logged_in(list(roles)):
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": f"Requires role(s): {', '.join(roles)}."},
            )
        return user

    return dependency
