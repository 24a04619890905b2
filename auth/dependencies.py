"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Access tokens arrive in the Authorization: Bearer <token> header. Verification
errors (TokenExpiredError / TokenInvalidError) propagate unchanged; the
exception handlers in api/main.py turn them into 401 responses with distinct
codes, so clients can tell "refresh and retry" from "log in again".

Layer rule: may import from fastapi (Depends/HTTPException/Request) because
this module is part of the FastAPI dependency injection system. No imports
from api/.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.service import AuthService


def get_auth_service(request: Request) -> AuthService:
    """Return the AuthService built by the app lifespan."""
    return request.app.state.auth_service


def get_current_user_id(request: Request) -> str:
    """Require a valid bearer access token; return its user id.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user_id: str = Depends(get_current_user_id)): ...
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=401,
            detail={"code": "missing_bearer", "message": "Bearer access token required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return get_auth_service(request).authenticate(auth_header[7:].strip())
