"""
auth/store.py -- CredentialStore interface and backend factory.

Pattern: Repository. CredentialStore is the one capability set every backend
implements; AuthService only ever talks to this interface. Backends:

  InMemoryCredentialStore   (auth/memory_store.py) -- dicts + one lock
  SQLiteCredentialStore     (auth/sql_store.py)    -- embedded, single writer
  PostgresCredentialStore   (auth/sql_store.py)    -- networked relational DB

create_store() picks one from Settings.store_backend at startup. Nothing else
in the codebase branches on the backend.

Contract shared by all backends:
  - create_user raises EmailExistsError on a duplicate email; concurrent
    duplicates resolve to exactly one success.
  - verify_credentials raises the same InvalidCredentialsError for an unknown
    email, an unset password, and a wrong password. It always runs one Argon2
    verification, against a dummy hash when there is nothing real to check,
    so response time does not reveal whether the email exists.
  - rotate_refresh is atomic and linearizable per token: of two concurrent
    rotations of the same token, exactly one succeeds.
  - delete_refresh is idempotent.
  - Backend failures surface as StorageError.

Layer rule: no imports from api/. core/ is only imported inside create_store().
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING

from auth.errors import InvalidCredentialsError
from auth.models import RefreshRecord, User
from auth.passwords import PasswordHasher

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("tokengate.store")

_DUMMY_PASSWORD = "tokengate_timing_dummy"  # nosec B105 -- not a credential


def new_user_id() -> str:
    """Return a fresh, never-reused user id."""
    return f"u_{uuid.uuid4().hex}"


class CredentialStore(ABC):
    """Durable user and refresh-token state.

    Safe for concurrent use by multiple threads without external locking.
    """

    def __init__(self, hasher: PasswordHasher | None = None) -> None:
        self.hasher = hasher or PasswordHasher()
        # Computed once so the first failed login is not measurably slower
        # than later ones.
        self._dummy_hash = self.hasher.hash(_DUMMY_PASSWORD)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    @abstractmethod
    def create_user(self, email: str, name: str = "", password: str | None = None) -> User:
        """Insert a new user and return it.

        With password=None the row gets an empty placeholder hash and the
        account cannot log in until set_password() runs. With a password the
        hash is computed first and the row is inserted complete, in one
        statement.

        Raises EmailExistsError, EmptyInputError (empty password), StorageError.
        """

    @abstractmethod
    def set_password(self, user_id: str, plaintext: str) -> None:
        """Hash plaintext and store it on user_id. Raises UserNotFoundError if no row matched."""

    @abstractmethod
    def verify_credentials(self, email: str, plaintext: str) -> User:
        """Return the user for a correct email/password pair, else raise InvalidCredentialsError."""

    @abstractmethod
    def get_user(self, user_id: str) -> User | None: ...

    # ------------------------------------------------------------------
    # Refresh tokens
    # ------------------------------------------------------------------

    @abstractmethod
    def save_refresh(self, token: str, user_id: str, expires_at: datetime) -> None:
        """Insert or overwrite a refresh token row (idempotent upsert).

        Raises UserNotFoundError if user_id does not exist.
        """

    @abstractmethod
    def rotate_refresh(self, old_token: str, new_token: str, user_id: str, expires_at: datetime) -> None:
        """Atomically replace old_token with new_token.

        Raises RefreshInvalidError if old_token is absent, bound to another
        user, or expired. On any failure the prior state is left untouched.
        """

    @abstractmethod
    def lookup_refresh(self, token: str) -> RefreshRecord | None:
        """Pure read. Expiry is the caller's business."""

    @abstractmethod
    def delete_refresh(self, token: str) -> None:
        """Delete token if present. Deleting an unknown token is not an error."""

    @abstractmethod
    def purge_expired_refresh(self) -> int:
        """Delete every expired refresh token; return how many were removed."""

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the backend is reachable."""
        return True

    def close(self) -> None:
        pass

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def _hash_for_insert(self, password: str | None) -> str:
        return "" if password is None else self.hasher.hash(password)

    def _check_password(self, user: User | None, plaintext: str) -> User:
        """Equal-cost password check for verify_credentials().

        Do NOT return early before running Argon2: an unknown email and an
        unset password both verify against the dummy hash.
        """
        if user is None or not user.password_hash:
            self.hasher.verify(plaintext, self._dummy_hash)
            raise InvalidCredentialsError()
        if not self.hasher.verify(plaintext, user.password_hash):
            raise InvalidCredentialsError()
        return user


def create_store(settings: Settings, hasher: PasswordHasher | None = None) -> CredentialStore:
    """Build the CredentialStore selected by settings.store_backend."""
    backend = settings.store_backend
    if backend == "memory":
        from auth.memory_store import InMemoryCredentialStore

        store: CredentialStore = InMemoryCredentialStore(hasher=hasher)
    elif backend == "sqlite":
        from auth.sql_store import SQLiteCredentialStore

        store = SQLiteCredentialStore.from_path(
            settings.sqlite_path,
            hasher=hasher,
            timeout_seconds=settings.store_timeout_seconds,
        )
    elif backend == "postgres":
        from auth.sql_store import PostgresCredentialStore

        store = PostgresCredentialStore(
            settings.database_url,
            hasher=hasher,
            timeout_seconds=settings.store_timeout_seconds,
        )
    else:
        raise ValueError(f"Unknown store backend: {backend!r}")
    logger.info("Credential store initialized (backend=%s)", backend)
    return store
