"""
API request and response models for tokengate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Passwords are never stripped or otherwise normalized here -- the core hashes
exactly what the client sent. Empty passwords pass validation on purpose so
the core reports them as empty_input.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from auth.models import SessionTokens, User

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /v1/auth/register."""

    email: str = Field(min_length=3, max_length=320)
    name: Optional[str] = Field(default=None, max_length=255)
    password: str = Field(max_length=1024)


class LoginRequest(BaseModel):
    """Request body for POST /v1/auth/login."""

    email: str = Field(max_length=320)
    password: str = Field(max_length=1024)


class RefreshRequest(BaseModel):
    """Request body for POST /v1/auth/refresh and POST /v1/auth/logout."""

    refresh_token: str = Field(max_length=256)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user. The password hash is never part of it."""

    id: str
    email: str
    name: str = ""

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(id=user.id, email=user.email, name=user.name)


class TokenResponse(BaseModel):
    """Tokens issued by register, login and refresh.

    The *_expires_in fields are seconds from now, computed at response time.
    user is omitted on refresh.
    """

    access_token: str
    token_type: str = "bearer"
    access_expires_in: int
    refresh_token: str
    refresh_expires_in: int
    user: Optional[UserResponse] = None

    @classmethod
    def from_tokens(cls, tokens: SessionTokens, user: User | None = None) -> "TokenResponse":
        now = datetime.now(timezone.utc)
        return cls(
            access_token=tokens.access_token,
            access_expires_in=max(0, int((tokens.access_expires_at - now).total_seconds())),
            refresh_token=tokens.refresh_token,
            refresh_expires_in=max(0, int((tokens.refresh_expires_at - now).total_seconds())),
            user=UserResponse.from_user(user) if user is not None else None,
        )


class MessageResponse(BaseModel):
    message: str


class ErrorDetail(BaseModel):
    """Structured error payload shared by every failure response."""

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /healthz."""

    status: str = "ok"
    version: str
    store: str = "ok"
