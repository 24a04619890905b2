"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the service
do the work; these only own the shape of the data passed between them.

All datetimes are timezone-aware UTC.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class User:
    """A registered identity.

    password_hash is the PasswordHasher encoding, or "" while the password is
    unset (placeholder). It never leaves the core -- the API layer maps User to
    a response model without it.
    """

    id: str
    email: str
    name: str = ""
    password_hash: str = ""
    created_at: datetime | None = None


@dataclass(frozen=True)
class RefreshRecord:
    """A persisted refresh token bound to exactly one user and one expiry."""

    token: str
    user_id: str
    expires_at: datetime


@dataclass(frozen=True)
class AccessClaims:
    """Verified contents of an access token."""

    subject: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class IssuedAccess:
    token: str
    expires_at: datetime


@dataclass(frozen=True)
class SessionTokens:
    """The access/refresh pair handed to a client after login, register, or refresh."""

    access_token: str
    access_expires_at: datetime
    refresh_token: str
    refresh_expires_at: datetime


@dataclass(frozen=True)
class AuthResult:
    user: User
    tokens: SessionTokens
