"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST  /api/v1/auth/login            -- password login; optional remember-me cookie
  POST  /api/v1/auth/logout           -- end session; delete this (or every) remember-me token
  GET   /api/v1/auth/me               -- current user info (session or auto-login)
  GET   /api/v1/auth/authorized       -- does the current user hold all ?role= values
  POST  /api/v1/auth/check-password   -- verify a password for the current user
  PATCH /api/v1/auth/me/password      -- change own password (refused in forced sessions)
  POST  /api/v1/auth/impersonate      -- admin force-login as another user

Security:
  POST /login is rate-limited per IP (LOGIN_RATE_LIMIT, default 10/minute).
  Login failures all return the same "bad_credentials" error, whether the
  username was unknown, the password wrong, or the "login" role missing.
  Cache-Control: no-store on login responses.
  Impersonation marks the session as forced by default; password changes
  are refused while that flag is set.

Every route that reads the current user may rotate the remember-me cookie,
so all of them return data (never a Response) to let FastAPI merge the
Set-Cookie headers from the get_auth() dependency.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from api.limiter import limiter
from api.models import (
    AuthorizedResponse,
    ImpersonateRequest,
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    LogoutResponse,
    MeResponse,
    PasswordChangeRequest,
    PasswordCheckRequest,
    PasswordCheckResponse,
)
from auth.dependencies import get_auth, get_current_user, require_roles
from auth.models import User
from auth.service import Authenticator
from auth.tokens import hash_password
from core.config import get_settings

# Auth policy:
# - POST  /api/v1/auth/login:           public -- login endpoint must be unauthenticated
# - POST  /api/v1/auth/logout:          public -- clearing a session needs no prior auth
# - GET   /api/v1/auth/me:              requires auth (get_current_user)
# - GET   /api/v1/auth/authorized:      requires auth (get_current_user)
# - POST  /api/v1/auth/check-password:  requires auth (get_current_user)
# - PATCH /api/v1/auth/me/password:     requires auth, refused in forced sessions
# - POST  /api/v1/auth/impersonate:     requires admin (require_roles("admin"))
router = APIRouter()

_settings = get_settings()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_settings.login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    auth: Authenticator = Depends(get_auth),
) -> LoginResponse:
    """Authenticate with username (or email) and password.

    With remember=true an authautologin cookie is issued alongside the
    session, and later requests without a session log in from it.
    """
    if not auth.login(body.username, body.password, remember=body.remember):
        raise HTTPException(
            status_code=401,
            detail={"code": "bad_credentials", "message": "Invalid username or password."},
            headers={"Cache-Control": "no-store"},
        )

    user = auth.get_user()
    response.headers["Cache-Control"] = "no-store"
    return LoginResponse(user_id=user.id, username=user.username, remember=body.remember)


@router.post("/auth/logout", response_model=LogoutResponse)
def logout(
    body: Optional[LogoutRequest] = None,
    auth: Authenticator = Depends(get_auth),
) -> LogoutResponse:
    """End the session and remove the remember-me token."""
    body = body or LogoutRequest()
    return LogoutResponse(logged_out=auth.logout(destroy=body.destroy, logout_all=body.logout_all))


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
def me(
    current_user: User = Depends(get_current_user),
    auth: Authenticator = Depends(get_auth),
) -> MeResponse:
    """Return identity information for the currently authenticated user."""
    return _user_to_response(auth, current_user)


@router.get("/auth/authorized", response_model=AuthorizedResponse)
def authorized(
    role: list[str] = Query(default=[]),
    current_user: User = Depends(get_current_user),
    auth: Authenticator = Depends(get_auth),
) -> AuthorizedResponse:
    """Report whether the current user holds every requested role.

    Unknown role names make the answer false rather than an error.
    """
    return AuthorizedResponse(authorized=auth.logged_in(role or None), roles=role)


@router.post("/auth/check-password", response_model=PasswordCheckResponse)
def check_password(
    body: PasswordCheckRequest,
    current_user: User = Depends(get_current_user),
    auth: Authenticator = Depends(get_auth),
) -> PasswordCheckResponse:
    """Verify a password for the current user (e.g. before a sensitive action)."""
    return PasswordCheckResponse(valid=auth.check_password(body.password))


@router.patch("/auth/me/password", status_code=204)
def change_password(
    body: PasswordChangeRequest,
    current_user: User = Depends(get_current_user),
    auth: Authenticator = Depends(get_auth),
) -> None:
    """Change the current user's password.

    Refused during a forced (impersonated) session: the admin acting as the
    user must not be able to take over the account.
    """
    if auth.is_forced():
        raise HTTPException(
            status_code=403,
            detail={"code": "forced_session", "message": "Account changes are disabled in a forced session."},
        )
    if not auth.check_password(body.current_password):
        raise HTTPException(
            status_code=400,
            detail={"code": "bad_password", "message": "Current password is incorrect."},
        )
    auth.store.update_password(current_user.id, hash_password(body.new_password))


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


@router.post("/auth/impersonate", response_model=MeResponse)
def impersonate(
    body: ImpersonateRequest,
    current_user: User = Depends(require_roles("admin")),
    auth: Authenticator = Depends(get_auth),
) -> MeResponse:
    """Switch this session to another user without their password. Admin only."""
    target = auth.force_login(body.username, mark_forced=body.mark_forced)
    if target is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "User not found."},
        )
    return _user_to_response(auth, target)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _user_to_response(auth: Authenticator, user: User) -> MeResponse:
    return MeResponse(
        user_id=user.id,
        username=user.username,
        email=user.email,
        roles=[r.name for r in auth.store.get_user_roles(user.id)],
        logins=user.logins,
        last_login=user.last_login,
        forced=auth.is_forced(),
    )
