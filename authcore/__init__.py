"""Credential lifecycle and OAuth correlation-state core."""

from authcore.core.errors import (
    AuthCoreError,
    DuplicateIdentity,
    InvalidCredential,
    InvalidToken,
    StateNotFound,
    StorageRejected,
    StorageUnavailable,
    TokenExpired,
)

__all__ = [
    "AuthCoreError",
    "DuplicateIdentity",
    "InvalidCredential",
    "InvalidToken",
    "StateNotFound",
    "StorageRejected",
    "StorageUnavailable",
    "TokenExpired",
]
