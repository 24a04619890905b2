"""
auth/errors.py -- Exception taxonomy for the credential and token core.

Every fallible core operation raises one of these. The API layer maps each
class to a status code and an error envelope; nothing below api/ knows about
HTTP.

InvalidCredentialsError and RefreshInvalidError carry one fixed message each.
They deliberately never say *why* (unknown email vs. wrong password; expired
vs. replayed vs. foreign token) so responses do not leak account existence
or token state.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base exception for all credential and token errors."""

    code = "auth_error"
    default_message = "Authentication error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class EmptyInputError(AuthError):
    """Raised when a password (or other required secret) is empty."""

    code = "empty_input"
    default_message = "Input must not be empty"


class EmailExistsError(AuthError):
    code = "email_exists"
    default_message = "Email already registered"


class UserNotFoundError(AuthError):
    code = "user_not_found"
    default_message = "User not found"


class InvalidCredentialsError(AuthError):
    """Raised for an unknown email, an unset password, or a wrong password alike."""

    code = "invalid_credentials"
    default_message = "Invalid email or password"


class RefreshInvalidError(AuthError):
    """Raised for a refresh token that is unknown, expired, foreign, or already rotated."""

    code = "refresh_invalid"
    default_message = "Invalid or expired refresh token"


class TokenExpiredError(AuthError):
    code = "token_expired"
    default_message = "Access token has expired"


class TokenInvalidError(AuthError):
    code = "token_invalid"
    default_message = "Access token is invalid"


class SigningError(AuthError):
    code = "token_error"
    default_message = "Could not sign token"


class StorageError(AuthError):
    """Raised when the credential store is unreachable, times out, or fails mid-operation.

    Retryable by the caller; the core never retries internally.
    """

    code = "storage_unavailable"
    default_message = "Credential store unavailable"
