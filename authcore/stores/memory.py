"""In-memory stores for tests and single-process development.

Every mutating method runs without an intervening ``await``, so on a single
event loop each call is atomic in the same sense the real back-ends are.
"""

from __future__ import annotations

import itertools
import math
import time
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timezone

from authcore.core.errors import DuplicateIdentity
from authcore.stores.base import (
    TTL_MISSING,
    TTL_PERSISTENT,
    RefreshTokenRecord,
    RotationOutcome,
    RotationResult,
    UserRecord,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemoryCredentialStore:
    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self.users: dict[int, UserRecord] = {}
        self.tokens: dict[str, RefreshTokenRecord] = {}
        self._user_ids = itertools.count(1)
        self._token_ids = itertools.count(1)

    async def get_user_by_email(self, email: str) -> UserRecord | None:
        for user in self.users.values():
            if user.email == email:
                return user
        return None

    async def get_user_by_id(self, user_id: int) -> UserRecord | None:
        return self.users.get(user_id)

    async def create_user(
        self,
        email: str,
        password_hash: str | None,
        name: str | None,
        role: str = "user",
    ) -> UserRecord:
        if any(u.email == email for u in self.users.values()):
            raise DuplicateIdentity("Email already registered")
        user = UserRecord(
            id=next(self._user_ids),
            email=email,
            password_hash=password_hash,
            name=name,
            role=role,
            created_at=self._clock(),
        )
        self.users[user.id] = user
        return user

    def _insert_token(self, user_id: int, token_hash: str, expires_at: datetime) -> RefreshTokenRecord:
        if token_hash in self.tokens:
            raise ValueError("refresh token hash collision")
        record = RefreshTokenRecord(
            id=next(self._token_ids),
            user_id=user_id,
            token_hash=token_hash,
            expires_at=expires_at,
            revoked=False,
            created_at=self._clock(),
        )
        self.tokens[token_hash] = record
        return record

    async def add_refresh_token(self, user_id: int, token_hash: str, expires_at: datetime) -> RefreshTokenRecord:
        return self._insert_token(user_id, token_hash, expires_at)

    async def get_refresh_token(self, token_hash: str) -> RefreshTokenRecord | None:
        return self.tokens.get(token_hash)

    async def rotate_refresh_token(
        self,
        token_hash: str,
        replacement_hash: str,
        replacement_expires_at: datetime,
        now: datetime,
    ) -> RotationResult:
        record = self.tokens.get(token_hash)
        if record is None or record.revoked:
            return RotationResult(RotationOutcome.INVALID)
        self.tokens[token_hash] = replace(record, revoked=True)
        if now >= record.expires_at:
            return RotationResult(RotationOutcome.EXPIRED, user_id=record.user_id)
        replacement = self._insert_token(record.user_id, replacement_hash, replacement_expires_at)
        return RotationResult(RotationOutcome.ROTATED, user_id=record.user_id, replacement=replacement)

    async def revoke_refresh_token(self, token_hash: str) -> bool:
        record = self.tokens.get(token_hash)
        if record is None or record.revoked:
            return False
        self.tokens[token_hash] = replace(record, revoked=True)
        return True


class MemoryEphemeralStore:
    """TTL key-value store with passive expiry: lapsed entries are hidden from reads
    but stay in memory until deleted, like a check-on-read back-end."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        # key -> (value, absolute expiry or None)
        self._data: dict[str, tuple[str, float | None]] = {}

    def _live(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._data[key] = (value, self._clock() + ttl_seconds)

    async def get(self, key: str) -> str | None:
        return self._live(key)

    async def getdel(self, key: str) -> str | None:
        value = self._live(key)
        if value is not None:
            del self._data[key]
        return value

    async def ttl(self, key: str) -> int:
        entry = self._data.get(key)
        if entry is None or self._live(key) is None:
            return TTL_MISSING
        expires_at = entry[1]
        if expires_at is None:
            return TTL_PERSISTENT
        return math.ceil(expires_at - self._clock())

    async def scan_keys(self, prefix: str) -> list[str]:
        return [k for k in self._data if k.startswith(prefix)]

    async def purge_expired(self, prefix: str) -> int:
        now = self._clock()
        lapsed = [
            k for k, (_, expires_at) in self._data.items()
            if k.startswith(prefix) and expires_at is not None and now >= expires_at
        ]
        for key in lapsed:
            del self._data[key]
        return len(lapsed)

    async def aclose(self) -> None:
        self._data.clear()
