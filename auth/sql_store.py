"""
auth/sql_store.py -- SQLAlchemy Core CredentialStore backends.

Pattern: Repository + Data Mapper. SQLCredentialStore holds the schema and
every query; _row_to_user / _row_to_refresh are the mappers. The two concrete
backends only differ in engine setup and upsert dialect:

  SQLiteCredentialStore    embedded file DB, one writer at a time. WAL mode
                           and foreign keys are enabled per connection; the
                           busy timeout bounds how long a writer waits.
  PostgresCredentialStore  networked DB via psycopg2, pooled connections,
                           connect_timeout + statement_timeout per session.

Security:
  All queries use bound parameters. No f-strings in SQL.

Rotation (rotate_refresh):
  One transaction runs a conditional DELETE that validates and consumes the
  old token in a single statement:

      DELETE FROM refresh_tokens
       WHERE token = :old AND user_id = :uid AND exp_unix >= :now

  rowcount == 1 means this transaction owns the old token; the new row is
  then inserted and both commit together. A concurrent rotation of the same
  token blocks on the row lock (PostgreSQL) or the database write lock
  (SQLite), and once the winner commits its DELETE matches nothing. Any
  exception inside engine.begin() rolls the whole transaction back, so the
  old token is never lost without the new one being stored.

Schema migration: metadata.create_all() on startup (CREATE TABLE IF NOT
EXISTS semantics). There is no migration tool.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import (
    BigInteger,
    Column,
    ForeignKey,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    text,
)
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import (
    EmailExistsError,
    RefreshInvalidError,
    StorageError,
    UserNotFoundError,
)
from auth.models import RefreshRecord, User
from auth.passwords import PasswordHasher
from auth.store import CredentialStore, new_user_id

logger = logging.getLogger("tokengate.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(64), primary_key=True),
    Column("email", String(320), nullable=False, unique=True),
    Column("name", Text),
    Column("pw_hash", Text, nullable=False, server_default=""),  # "" = password not set
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("token", String(64), primary_key=True),
    Column("user_id", String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("exp_unix", BigInteger, nullable=False),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_unix(value: datetime) -> int:
    return int(value.timestamp())


def _from_unix(value: int) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SQLCredentialStore(CredentialStore):
    """Shared SQL implementation. Use one of the concrete subclasses."""

    # Dialect-specific INSERT construct supporting on_conflict_do_update().
    _insert = staticmethod(sqlite_insert)

    def __init__(self, engine: Engine, hasher: PasswordHasher | None = None) -> None:
        super().__init__(hasher)
        self.engine = engine
        with self._storage_errors("create_schema"):
            _metadata.create_all(self.engine)

    @contextmanager
    def _storage_errors(self, operation: str) -> Iterator[None]:
        """Translate any SQLAlchemy failure (timeouts included) into StorageError."""
        try:
            yield
        except SQLAlchemyError as e:
            logger.error("Store operation %s failed: %s", operation, e.__class__.__name__)
            raise StorageError() from e

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, email: str, name: str = "", password: str | None = None) -> User:
        password_hash = self._hash_for_insert(password)
        now = _now_iso()
        user_id = new_user_id()
        with self._storage_errors("create_user"):
            try:
                with self.engine.begin() as conn:
                    conn.execute(
                        _users.insert().values(
                            id=user_id,
                            email=email,
                            name=name or "",
                            pw_hash=password_hash,
                            created_at=now,
                            updated_at=now,
                        )
                    )
            except IntegrityError as e:
                # UNIQUE(email) -- the database arbitrates concurrent duplicates.
                raise EmailExistsError() from e
        return User(
            id=user_id,
            email=email,
            name=name or "",
            password_hash=password_hash,
            created_at=datetime.fromisoformat(now),
        )

    def set_password(self, user_id: str, plaintext: str) -> None:
        password_hash = self.hasher.hash(plaintext)
        with self._storage_errors("set_password"):
            with self.engine.begin() as conn:
                result = conn.execute(
                    _users.update()
                    .where(_users.c.id == user_id)
                    .values(pw_hash=password_hash, updated_at=_now_iso())
                )
        if result.rowcount == 0:
            raise UserNotFoundError()

    def verify_credentials(self, email: str, plaintext: str) -> User:
        with self._storage_errors("verify_credentials"):
            with self.engine.connect() as conn:
                row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        # Argon2 runs after the connection is back in the pool.
        return self._check_password(_row_to_user(row) if row is not None else None, plaintext)

    def get_user(self, user_id: str) -> User | None:
        with self._storage_errors("get_user"):
            with self.engine.connect() as conn:
                row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    # ------------------------------------------------------------------
    # Refresh tokens
    # ------------------------------------------------------------------

    def save_refresh(self, token: str, user_id: str, expires_at: datetime) -> None:
        exp_unix = _to_unix(expires_at)
        stmt = self._insert(_refresh_tokens).values(
            token=token,
            user_id=user_id,
            exp_unix=exp_unix,
            created_at=_now_iso(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[_refresh_tokens.c.token],
            set_={"user_id": user_id, "exp_unix": exp_unix},
        )
        with self._storage_errors("save_refresh"):
            try:
                with self.engine.begin() as conn:
                    conn.execute(stmt)
            except IntegrityError as e:
                # Only the users.id foreign key can fail here.
                raise UserNotFoundError() from e

    def rotate_refresh(self, old_token: str, new_token: str, user_id: str, expires_at: datetime) -> None:
        now_unix = int(time.time())
        with self._storage_errors("rotate_refresh"):
            try:
                with self.engine.begin() as conn:
                    consumed = conn.execute(
                        _refresh_tokens.delete().where(
                            (_refresh_tokens.c.token == old_token)
                            & (_refresh_tokens.c.user_id == user_id)
                            & (_refresh_tokens.c.exp_unix >= now_unix)
                        )
                    )
                    if consumed.rowcount != 1:
                        raise RefreshInvalidError()
                    conn.execute(
                        _refresh_tokens.insert().values(
                            token=new_token,
                            user_id=user_id,
                            exp_unix=_to_unix(expires_at),
                            created_at=_now_iso(),
                        )
                    )
            except IntegrityError as e:
                # new_token already present; the transaction rolled back.
                raise RefreshInvalidError() from e

    def lookup_refresh(self, token: str) -> RefreshRecord | None:
        with self._storage_errors("lookup_refresh"):
            with self.engine.connect() as conn:
                row = conn.execute(_refresh_tokens.select().where(_refresh_tokens.c.token == token)).fetchone()
        return _row_to_refresh(row) if row is not None else None

    def delete_refresh(self, token: str) -> None:
        with self._storage_errors("delete_refresh"):
            with self.engine.begin() as conn:
                conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.token == token))

    def purge_expired_refresh(self) -> int:
        now_unix = int(time.time())
        with self._storage_errors("purge_expired_refresh"):
            with self.engine.begin() as conn:
                result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.exp_unix < now_unix))
        return result.rowcount

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.warning("Store ping failed: %s", e.__class__.__name__)
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign keys on every new connection.

    SQLite PRAGMAs are per-connection, so they cannot be set once at startup.
    Foreign keys are off by default in SQLite; without them the
    ON DELETE CASCADE on refresh_tokens.user_id would be ignored.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class SQLiteCredentialStore(SQLCredentialStore):
    """Embedded single-writer backend.

    Usage:
        store = SQLiteCredentialStore.from_path("data/app.db")
        user = store.create_user("a@x.com", "Ann", password="secret1")
        store.close()
    """

    _insert = staticmethod(sqlite_insert)

    def __init__(
        self,
        db_url: str,
        hasher: PasswordHasher | None = None,
        timeout_seconds: float = 5.0,
    ) -> None:
        # timeout is the busy timeout: how long a writer waits for the
        # database lock before the driver gives up with "database is locked".
        engine = create_engine(
            db_url,
            connect_args={"check_same_thread": False, "timeout": timeout_seconds},
        )
        event.listen(engine, "connect", _set_sqlite_pragmas)
        super().__init__(engine, hasher)

    @classmethod
    def from_path(
        cls,
        path: str | Path,
        hasher: PasswordHasher | None = None,
        timeout_seconds: float = 5.0,
    ) -> "SQLiteCredentialStore":
        """Open (or create) the database file at path, creating parent directories."""
        db_path = Path(path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return cls(f"sqlite:///{db_path}", hasher=hasher, timeout_seconds=timeout_seconds)


# ---------------------------------------------------------------------------
# PostgreSQL
# ---------------------------------------------------------------------------


class PostgresCredentialStore(SQLCredentialStore):
    """Networked relational backend (psycopg2 driver).

    database_url is a SQLAlchemy URL, e.g.
    postgresql+psycopg2://app:secret@db:5432/app
    """

    _insert = staticmethod(pg_insert)

    def __init__(
        self,
        database_url: str,
        hasher: PasswordHasher | None = None,
        timeout_seconds: float = 5.0,
        pool_size: int = 10,
        max_overflow: int = 5,
    ) -> None:
        engine = create_engine(
            database_url,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_recycle=30 * 60,
            pool_pre_ping=True,
            pool_timeout=timeout_seconds,
            connect_args={
                "connect_timeout": max(1, math.ceil(timeout_seconds)),
                # Server-side cap per statement; a stuck statement surfaces as
                # OperationalError -> StorageError and its transaction rolls back.
                "options": f"-c statement_timeout={int(timeout_seconds * 1000)}",
            },
        )
        super().__init__(engine, hasher)


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name or "",
        password_hash=row.pw_hash or "",
        created_at=datetime.fromisoformat(row.created_at) if row.created_at else None,
    )


def _row_to_refresh(row) -> RefreshRecord:
    return RefreshRecord(token=row.token, user_id=row.user_id, expires_at=_from_unix(row.exp_unix))
