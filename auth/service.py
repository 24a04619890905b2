"""
auth/service.py -- Session lifecycle orchestration.

AuthService composes a CredentialStore, a TokenSigner and (through the store)
the PasswordHasher into the operations the transport layer exposes:

  register(email, name, password) -> AuthResult
  login(email, password)          -> AuthResult
  refresh(refresh_token)          -> SessionTokens
  logout(refresh_token)           -> None
  get_profile(user_id)            -> User
  authenticate(access_token)      -> user id

Session states: anonymous -> authenticated (access + refresh issued) ->
authenticated again after each rotation -> revoked after logout.

Refresh doubles as replay detection: every successful refresh consumes the
presented token, so presenting it a second time finds nothing and fails with
RefreshInvalidError.

Registration policy: the password is hashed before the user row exists and
the row is inserted complete (create_user(..., password=...)). A failure at
any step before the insert leaves nothing behind, and there is no window in
which a user row holds the empty placeholder hash.

The service holds no mutable state of its own and never inspects which store
backend it was given.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from auth.errors import RefreshInvalidError, UserNotFoundError
from auth.models import AuthResult, SessionTokens, User
from auth.store import CredentialStore
from auth.tokens import TokenSigner, new_refresh_token

logger = logging.getLogger("tokengate.auth")

DEFAULT_ACCESS_TTL_MINUTES = 15
DEFAULT_REFRESH_TTL_DAYS = 30


class AuthService:
    def __init__(
        self,
        store: CredentialStore,
        signer: TokenSigner,
        access_ttl_minutes: int = DEFAULT_ACCESS_TTL_MINUTES,
        refresh_ttl_days: int = DEFAULT_REFRESH_TTL_DAYS,
    ) -> None:
        self.store = store
        self.signer = signer
        self.access_ttl_minutes = access_ttl_minutes
        self.refresh_ttl = timedelta(days=refresh_ttl_days)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def register(self, email: str, name: str, password: str) -> AuthResult:
        """Create an account and open a session for it.

        Raises EmptyInputError, EmailExistsError, SigningError, StorageError.
        """
        user = self.store.create_user(email, name, password=password)
        logger.info("Registered user %s", user.id)
        return AuthResult(user=user, tokens=self._open_session(user.id))

    def login(self, email: str, password: str) -> AuthResult:
        """Open a session for a correct email/password pair.

        Raises InvalidCredentialsError, SigningError, StorageError.
        """
        user = self.store.verify_credentials(email, password)
        logger.info("Login succeeded for user %s", user.id)
        return AuthResult(user=user, tokens=self._open_session(user.id))

    def refresh(self, refresh_token: str) -> SessionTokens:
        """Exchange a refresh token for a new access/refresh pair.

        The presented token is consumed. Unknown, expired, and already-rotated
        tokens all raise RefreshInvalidError.
        """
        record = self.store.lookup_refresh(refresh_token) if refresh_token else None
        if record is None:
            raise RefreshInvalidError()
        if record.expires_at < datetime.now(timezone.utc):
            self.store.delete_refresh(refresh_token)
            raise RefreshInvalidError()

        access = self.signer.issue_access(record.user_id, self.access_ttl_minutes)
        new_token = new_refresh_token()
        new_expires_at = self._refresh_expiry()
        try:
            self.store.rotate_refresh(refresh_token, new_token, record.user_id, new_expires_at)
        except RefreshInvalidError:
            # Lost a race with a concurrent refresh of the same token, or a replay.
            logger.warning("Refresh token rotation rejected for user %s", record.user_id)
            raise
        return SessionTokens(
            access_token=access.token,
            access_expires_at=access.expires_at,
            refresh_token=new_token,
            refresh_expires_at=new_expires_at,
        )

    def logout(self, refresh_token: str) -> None:
        """Revoke a refresh token. Succeeds whether or not the token existed."""
        if refresh_token:
            self.store.delete_refresh(refresh_token)

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def authenticate(self, access_token: str) -> str:
        """Verify an access token and return its subject (the user id).

        Raises TokenExpiredError or TokenInvalidError.
        """
        return self.signer.verify(access_token).subject

    def get_profile(self, user_id: str) -> User:
        user = self.store.get_user(user_id)
        if user is None:
            raise UserNotFoundError()
        return user

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _refresh_expiry(self) -> datetime:
        return datetime.now(timezone.utc).replace(microsecond=0) + self.refresh_ttl

    def _open_session(self, user_id: str) -> SessionTokens:
        access = self.signer.issue_access(user_id, self.access_ttl_minutes)
        refresh_token = new_refresh_token()
        refresh_expires_at = self._refresh_expiry()
        self.store.save_refresh(refresh_token, user_id, refresh_expires_at)
        return SessionTokens(
            access_token=access.token,
            access_expires_at=access.expires_at,
            refresh_token=refresh_token,
            refresh_expires_at=refresh_expires_at,
        )
