"""Failure taxonomy for the credential core.

Validation failures and StorageRejected are terminal for the
calling request. StorageUnavailable is transient: the caller may retry the whole
operation. Nothing in this package retries on its own.
"""

from __future__ import annotations


class AuthCoreError(Exception):
    """Base class for every failure raised by authcore."""

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.__class__.__doc__ or self.__class__.__name__
        super().__init__(self.message)


class DuplicateIdentity(AuthCoreError):
    """Email already registered."""


class InvalidCredential(AuthCoreError):
    """Invalid email or password."""


class InvalidToken(AuthCoreError):
    """Token unknown, revoked or malformed."""


class TokenExpired(InvalidToken):
    """Refresh token expired (and is now revoked)."""


class StateNotFound(AuthCoreError):
    """Correlation state or code verifier missing, expired or already consumed."""


class StorageUnavailable(AuthCoreError):
    """Backing store failed or timed out."""


class StorageRejected(AuthCoreError):
    """Backing store refused the command (wrong type, bad script); retrying will not help."""


__all__ = [
    "AuthCoreError",
    "DuplicateIdentity",
    "InvalidCredential",
    "InvalidToken",
    "TokenExpired",
    "StateNotFound",
    "StorageUnavailable",
    "StorageRejected",
]
