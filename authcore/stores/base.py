"""Store contracts consumed by the services.

Two tiers with different semantics:

- CredentialStore: durable users and refresh token records. Must offer an atomic
  conditional update for refresh token rotation.
- EphemeralStore: shared key-value store with per-key TTL and an atomic
  fetch-and-delete verb for one-time-use entries.

Adapters translate their library errors into StorageUnavailable.
"""

from __future__ import annotations

import asyncio
import enum
from collections.abc import Awaitable
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, TypeVar

from authcore.core.errors import StorageUnavailable

T = TypeVar("T")

# Redis TTL sentinels, shared by every EphemeralStore
TTL_MISSING = -2
TTL_PERSISTENT = -1


@dataclass(frozen=True)
class UserRecord:
    id: int
    email: str
    password_hash: str | None
    name: str | None
    role: str
    created_at: datetime


@dataclass(frozen=True)
class RefreshTokenRecord:
    id: int
    user_id: int
    token_hash: str
    expires_at: datetime
    revoked: bool
    created_at: datetime

    def is_valid(self, now: datetime) -> bool:
        return not self.revoked and now < self.expires_at


class RotationOutcome(str, enum.Enum):
    ROTATED = "rotated"
    EXPIRED = "expired"
    INVALID = "invalid"


@dataclass(frozen=True)
class RotationResult:
    outcome: RotationOutcome
    user_id: int | None = None
    replacement: RefreshTokenRecord | None = None


class CredentialStore(Protocol):
    async def get_user_by_email(self, email: str) -> UserRecord | None: ...

    async def get_user_by_id(self, user_id: int) -> UserRecord | None: ...

    async def create_user(
        self,
        email: str,
        password_hash: str | None,
        name: str | None,
        role: str = "user",
    ) -> UserRecord:
        """Insert a user. Raises DuplicateIdentity when the email is taken."""
        ...

    async def add_refresh_token(self, user_id: int, token_hash: str, expires_at: datetime) -> RefreshTokenRecord:
        """Persist a new, unrevoked refresh token record."""
        ...

    async def get_refresh_token(self, token_hash: str) -> RefreshTokenRecord | None: ...

    async def rotate_refresh_token(
        self,
        token_hash: str,
        replacement_hash: str,
        replacement_expires_at: datetime,
        now: datetime,
    ) -> RotationResult:
        """Revoke the record if still unrevoked and, when it had not expired, insert the
        replacement in the same transaction.

        INVALID: no such record or already revoked (nothing changes).
        EXPIRED: record was unrevoked but past expiry; it is now revoked, nothing inserted.
        ROTATED: record revoked and replacement inserted.
        """
        ...

    async def revoke_refresh_token(self, token_hash: str) -> bool:
        """Set revoked=True. Returns True if this call flipped the flag."""
        ...


class EphemeralStore(Protocol):
    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def get(self, key: str) -> str | None: ...

    async def getdel(self, key: str) -> str | None:
        """Atomically return the value and delete the key."""
        ...

    async def ttl(self, key: str) -> int:
        """Remaining seconds, TTL_PERSISTENT if no expiry, TTL_MISSING if absent or lapsed."""
        ...

    async def scan_keys(self, prefix: str) -> list[str]:
        """Keys under prefix that the back-end still holds (may include lapsed ones)."""
        ...

    async def purge_expired(self, prefix: str) -> int:
        """Drop lapsed entries under prefix in one step; returns how many were dropped.

        A key rewritten with a fresh TTL is live again and must survive.
        """
        ...

    async def aclose(self) -> None: ...


async def bounded(awaitable: Awaitable[T], timeout: float, operation: str) -> T:
    """Await a store call with an upper time bound; timeout -> StorageUnavailable."""
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as e:
        raise StorageUnavailable(f"{operation} timed out after {timeout:g}s") from e
