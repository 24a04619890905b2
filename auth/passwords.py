"""
auth/passwords.py -- Argon2id password hashing with a versioned encoding.

Security design decisions:
  Argon2id via argon2-cffi's low-level API. Argon2id is memory-hard: each
      guess costs memory_cost KiB of RAM, which makes GPU/ASIC brute force
      expensive. The low-level call (hash_secret_raw) is used rather than
      argon2.PasswordHasher because the stored format is our own.

  Encoding: v=1$t=<time>$m=<memory>$p=<parallelism>$<salt>$<digest>
      Salt and digest are unpadded URL-safe base64. Every parameter needed to
      re-derive the digest is stored alongside it, so verify() uses the
      *encoded* parameters -- raising the defaults later does not invalidate
      existing hashes.

  verify() never raises. Any malformed value is simply a non-match. The
      digest comparison goes through hmac.compare_digest (fixed time).

  Parameter ceilings: the cost values come out of the database, so verify()
      refuses anything above _MAX_MEMORY_COST / _MAX_TIME_COST rather than
      letting a corrupted row allocate gigabytes.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import secrets

from argon2.exceptions import HashingError
from argon2.low_level import Type, hash_secret_raw

from auth.errors import EmptyInputError

HASH_VERSION = 1

ARGON2_TIME_COST = 1  # iterations
ARGON2_MEMORY_COST = 64 * 1024  # KiB (64 MiB)
ARGON2_PARALLELISM = 4
ARGON2_HASH_LENGTH = 32  # bytes
SALT_LENGTH = 16  # bytes

_DELIMITER = "$"
_MAX_TIME_COST = 16
_MAX_MEMORY_COST = 1024 * 1024  # 1 GiB
_MAX_PARALLELISM = 64
_MIN_DIGEST_LENGTH = 16


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64decode(value: str) -> bytes:
    if not value:
        raise ValueError("empty base64 field")
    pad = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + pad)


def _parse_param(field: str, prefix: str) -> int:
    if not field.startswith(prefix):
        raise ValueError(f"expected {prefix!r} field")
    raw = field[len(prefix) :]
    if not raw.isdigit():
        raise ValueError(f"non-numeric {prefix!r} field")
    return int(raw)


class PasswordHasher:
    """Derive and verify salted Argon2id password digests.

    Usage:
        hasher = PasswordHasher()
        encoded = hasher.hash("secret1")
        hasher.verify("secret1", encoded)   # True
        hasher.verify("wrong", encoded)     # False

    The constructor arguments exist so tests can run with a cheap memory
    cost. Production code uses the module defaults.
    """

    def __init__(
        self,
        time_cost: int = ARGON2_TIME_COST,
        memory_cost: int = ARGON2_MEMORY_COST,
        parallelism: int = ARGON2_PARALLELISM,
        hash_length: int = ARGON2_HASH_LENGTH,
        salt_length: int = SALT_LENGTH,
    ) -> None:
        if time_cost < 1 or parallelism < 1:
            raise ValueError("time_cost and parallelism must be at least 1")
        if memory_cost < 8 * parallelism:
            raise ValueError("memory_cost must be at least 8 * parallelism KiB")
        if hash_length < _MIN_DIGEST_LENGTH or salt_length < 8:
            raise ValueError("hash_length must be >= 16 and salt_length >= 8 bytes")
        self.time_cost = time_cost
        self.memory_cost = memory_cost
        self.parallelism = parallelism
        self.hash_length = hash_length
        self.salt_length = salt_length

    def hash(self, plaintext: str) -> str:
        """Return the encoded Argon2id hash of plaintext.

        Raises EmptyInputError for an empty password. A fresh salt is drawn on
        every call, so hashing the same plaintext twice gives two different
        strings that both verify.
        """
        if not plaintext:
            raise EmptyInputError("Password must not be empty")
        salt = secrets.token_bytes(self.salt_length)
        digest = hash_secret_raw(
            secret=plaintext.encode("utf-8"),
            salt=salt,
            time_cost=self.time_cost,
            memory_cost=self.memory_cost,
            parallelism=self.parallelism,
            hash_len=self.hash_length,
            type=Type.ID,
        )
        return _DELIMITER.join(
            (
                f"v={HASH_VERSION}",
                f"t={self.time_cost}",
                f"m={self.memory_cost}",
                f"p={self.parallelism}",
                _b64encode(salt),
                _b64encode(digest),
            )
        )

    def verify(self, plaintext: str, encoded: str) -> bool:
        """Return True if plaintext matches encoded. Never raises."""
        if not plaintext or not encoded:
            return False

        parts = encoded.split(_DELIMITER)
        if len(parts) != 6:
            return False
        try:
            secret = plaintext.encode("utf-8")
            version = _parse_param(parts[0], "v=")
            time_cost = _parse_param(parts[1], "t=")
            memory_cost = _parse_param(parts[2], "m=")
            parallelism = _parse_param(parts[3], "p=")
            salt = _b64decode(parts[4])
            want = _b64decode(parts[5])
        except (ValueError, binascii.Error):
            return False

        if version != HASH_VERSION:
            return False
        if not (1 <= time_cost <= _MAX_TIME_COST and 1 <= parallelism <= _MAX_PARALLELISM):
            return False
        if not (8 * parallelism <= memory_cost <= _MAX_MEMORY_COST):
            return False
        if len(want) < _MIN_DIGEST_LENGTH or len(salt) < 8:
            return False

        try:
            got = hash_secret_raw(
                secret=secret,
                salt=salt,
                time_cost=time_cost,
                memory_cost=memory_cost,
                parallelism=parallelism,
                hash_len=len(want),
                type=Type.ID,
            )
        except HashingError:
            return False
        return hmac.compare_digest(got, want)
