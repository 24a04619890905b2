"""
api/routes/v1/auth.py -- Session REST endpoints.

Routes:
  POST /v1/auth/register  -- create account; returns tokens + user (201)
  POST /v1/auth/login     -- password login; returns tokens + user
  POST /v1/auth/refresh   -- rotate refresh token; returns new tokens
  POST /v1/auth/logout    -- revoke refresh token; always 200
  GET  /v1/users/me       -- current user profile (requires bearer token)

Handlers are plain `def` so FastAPI runs them in its thread pool: Argon2 and
the store calls block, and must not stall the event loop.

Errors are not caught here. AuthError subclasses propagate to the exception
handlers in api/main.py, which own the status-code mapping.

Token responses carry Cache-Control: no-store so no intermediary keeps a copy.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.models import (
    LoginRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)
from auth.dependencies import get_auth_service, get_current_user_id
from auth.service import AuthService

# Auth policy:
# - POST /v1/auth/register, /login, /refresh, /logout: public
# - GET  /v1/users/me: requires a bearer access token (get_current_user_id)
router = APIRouter()


def _token_response(body: TokenResponse, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/register", response_model=TokenResponse, status_code=201)
def register(body: RegisterRequest, service: AuthService = Depends(get_auth_service)) -> JSONResponse:
    """Create an account and return its first access/refresh pair."""
    result = service.register(body.email, body.name or "", body.password)
    return _token_response(TokenResponse.from_tokens(result.tokens, result.user), status_code=201)


@router.post("/auth/login", response_model=TokenResponse)
def login(body: LoginRequest, service: AuthService = Depends(get_auth_service)) -> JSONResponse:
    """Authenticate with email and password.

    Wrong password and unknown email produce the same 401 invalid_credentials.
    """
    result = service.login(body.email, body.password)
    return _token_response(TokenResponse.from_tokens(result.tokens, result.user))


@router.post("/auth/refresh", response_model=TokenResponse)
def refresh(body: RefreshRequest, service: AuthService = Depends(get_auth_service)) -> JSONResponse:
    """Exchange a refresh token for a new pair. The presented token stops working."""
    tokens = service.refresh(body.refresh_token)
    return _token_response(TokenResponse.from_tokens(tokens))


@router.post("/auth/logout", response_model=MessageResponse)
def logout(body: RefreshRequest, service: AuthService = Depends(get_auth_service)) -> MessageResponse:
    """Revoke a refresh token. Unknown or already-revoked tokens also succeed."""
    service.logout(body.refresh_token)
    return MessageResponse(message="Logged out.")


@router.get("/users/me", response_model=UserResponse)
def me(
    user_id: str = Depends(get_current_user_id),
    service: AuthService = Depends(get_auth_service),
) -> UserResponse:
    """Return the profile of the user the access token belongs to."""
    return UserResponse.from_user(service.get_profile(user_id))
