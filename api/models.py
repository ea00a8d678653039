"""
API request and response models for AuthGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Shared envelopes
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Login / logout
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login. username may also be an email."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=255)
    # Not stripped: whitespace is significant in passwords.
    password: str = Field(min_length=1, max_length=255, json_schema_extra={"format": "password"})
    remember: bool = False


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int
    username: str
    remember: bool


class LogoutRequest(BaseModel):
    """Request body for POST /api/v1/auth/logout.

    destroy:    clear the whole session, not just the logged-in user.
    logout_all: delete every remember-me token for the user (all devices).
    """

    destroy: bool = False
    logout_all: bool = False


class LogoutResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    logged_out: bool


# ---------------------------------------------------------------------------
# Current user
# ---------------------------------------------------------------------------


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    username: str
    email: Optional[str] = None
    roles: list[str]
    logins: int
    last_login: Optional[str] = None
    forced: bool = False


class AuthorizedResponse(BaseModel):
    """Response for GET /api/v1/auth/authorized."""

    model_config = ConfigDict(frozen=True)

    authorized: bool
    roles: list[str]


class PasswordCheckRequest(BaseModel):
    password: str = Field(min_length=1, max_length=255)


class PasswordCheckResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool


class PasswordChangeRequest(BaseModel):
    """Request body for PATCH /api/v1/auth/me/password."""

    current_password: str = Field(min_length=1, max_length=255)
    new_password: str = Field(min_length=8, max_length=255)


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


class ImpersonateRequest(BaseModel):
    """Request body for POST /api/v1/auth/impersonate (admin only)."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=255)
    mark_forced: bool = True
