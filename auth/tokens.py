"""
auth/tokens.py -- Access-token signing and refresh-token minting.

Security design decisions:
  Access tokens: python-jose with HS256. Tokens are signed with the process-
       wide JWT secret and carry only sub (user id), iat and exp. They are
       stateless -- nothing is persisted, and they cannot be revoked before
       exp. Keep the TTL short (15 minutes by default).

  Verification outcome: verify() distinguishes TokenExpiredError from
       TokenInvalidError. jose checks the signature before the claims, so an
       expired token with a forged signature is reported as invalid, never as
       expired. The distinction is only shown to a client that already holds
       a session: expired -> refresh and retry, invalid -> log in again.

  Refresh tokens: secrets.token_hex(32) gives 256 bits of entropy as 64 hex
       characters. They are opaque -- no structure, no signature -- and only
       mean something while the credential store holds a row for them.

Layer rule: no imports from api/ or core/. The secret is injected by the
caller (api/main.py reads it from core.config).
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTError

from auth.errors import SigningError, TokenExpiredError, TokenInvalidError
from auth.models import AccessClaims, IssuedAccess

ALGORITHM = "HS256"
REFRESH_TOKEN_BYTES = 32


def new_refresh_token() -> str:
    """Return a fresh opaque refresh token: 64 lowercase hex characters."""
    return secrets.token_hex(REFRESH_TOKEN_BYTES)


class TokenSigner:
    """Issue and verify short-lived HS256 access tokens.

    Usage:
        signer = TokenSigner(secret)
        issued = signer.issue_access(user.id, ttl_minutes=15)
        claims = signer.verify(issued.token)   # AccessClaims
    """

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("TokenSigner requires a non-empty secret")
        self._secret = secret

    def issue_access(self, user_id: str, ttl_minutes: int) -> IssuedAccess:
        """Sign a token for user_id that expires ttl_minutes from now.

        Timestamps are truncated to whole seconds so the returned expires_at
        equals the exp claim exactly. A negative ttl yields an already-expired
        token, which is occasionally useful in tests.
        """
        now = datetime.now(timezone.utc).replace(microsecond=0)
        expires_at = now + timedelta(minutes=ttl_minutes)
        claims = {
            "sub": user_id,
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        try:
            token = jwt.encode(claims, self._secret, algorithm=ALGORITHM)
        except (JWTError, TypeError, ValueError) as e:
            raise SigningError(f"Could not sign access token: {e}") from e
        return IssuedAccess(token=token, expires_at=expires_at)

    def verify(self, token: str) -> AccessClaims:
        """Verify signature and expiry; return the claims.

        Raises
        ------
        TokenExpiredError
            Signature is valid but exp is in the past.
        TokenInvalidError
            Bad signature, malformed token, or missing subject.
        """
        if not token:
            raise TokenInvalidError()
        try:
            payload = jwt.decode(token, self._secret, algorithms=[ALGORITHM])
        except ExpiredSignatureError as e:
            raise TokenExpiredError() from e
        except JWTError as e:
            raise TokenInvalidError() from e

        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            raise TokenInvalidError()
        try:
            issued_at = datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc)
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        except (KeyError, TypeError, ValueError, OverflowError) as e:
            raise TokenInvalidError() from e
        return AccessClaims(subject=subject, issued_at=issued_at, expires_at=expires_at)
