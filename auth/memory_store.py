"""
auth/memory_store.py -- Single-process CredentialStore backed by dicts.

All state lives on the instance and one threading.Lock guards every read and
write, which is what makes rotate_refresh linearizable here. Nothing is
module-global, so two instances never share state (tests rely on that).

Argon2 work happens outside the lock: hashing is deliberately slow and must
not serialize unrelated requests.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime, timezone

from auth.errors import EmailExistsError, RefreshInvalidError, UserNotFoundError
from auth.models import RefreshRecord, User
from auth.passwords import PasswordHasher
from auth.store import CredentialStore, new_user_id


class InMemoryCredentialStore(CredentialStore):
    def __init__(self, hasher: PasswordHasher | None = None) -> None:
        super().__init__(hasher)
        self._lock = threading.Lock()
        self._users: dict[str, User] = {}
        self._ids_by_email: dict[str, str] = {}
        self._refresh: dict[str, RefreshRecord] = {}

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, email: str, name: str = "", password: str | None = None) -> User:
        password_hash = self._hash_for_insert(password)
        user = User(
            id=new_user_id(),
            email=email,
            name=name or "",
            password_hash=password_hash,
            created_at=datetime.now(timezone.utc),
        )
        with self._lock:
            if email in self._ids_by_email:
                raise EmailExistsError()
            self._users[user.id] = user
            self._ids_by_email[email] = user.id
        return replace(user)

    def set_password(self, user_id: str, plaintext: str) -> None:
        password_hash = self.hasher.hash(plaintext)
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                raise UserNotFoundError()
            self._users[user_id] = replace(user, password_hash=password_hash)

    def verify_credentials(self, email: str, plaintext: str) -> User:
        with self._lock:
            user_id = self._ids_by_email.get(email)
            user = replace(self._users[user_id]) if user_id is not None else None
        return self._check_password(user, plaintext)

    def get_user(self, user_id: str) -> User | None:
        with self._lock:
            user = self._users.get(user_id)
            # Copies, so callers cannot mutate stored state.
            return replace(user) if user is not None else None

    # ------------------------------------------------------------------
    # Refresh tokens
    # ------------------------------------------------------------------

    def save_refresh(self, token: str, user_id: str, expires_at: datetime) -> None:
        with self._lock:
            if user_id not in self._users:
                raise UserNotFoundError()
            self._refresh[token] = RefreshRecord(token=token, user_id=user_id, expires_at=expires_at)

    def rotate_refresh(self, old_token: str, new_token: str, user_id: str, expires_at: datetime) -> None:
        now = datetime.now(timezone.utc)
        with self._lock:
            row = self._refresh.get(old_token)
            if row is None or row.user_id != user_id or row.expires_at < now:
                raise RefreshInvalidError()
            if new_token in self._refresh:
                # Would silently overwrite another live token; the SQL backends
                # fail the same way on their primary key.
                raise RefreshInvalidError()
            del self._refresh[old_token]
            self._refresh[new_token] = RefreshRecord(token=new_token, user_id=user_id, expires_at=expires_at)

    def lookup_refresh(self, token: str) -> RefreshRecord | None:
        with self._lock:
            return self._refresh.get(token)

    def delete_refresh(self, token: str) -> None:
        with self._lock:
            self._refresh.pop(token, None)

    def purge_expired_refresh(self) -> int:
        now = datetime.now(timezone.utc)
        with self._lock:
            expired = [t for t, row in self._refresh.items() if row.expires_at < now]
            for token in expired:
                del self._refresh[token]
        return len(expired)
