"""Access and refresh token issuance.

Two credential kinds with different trust models:

- access token: JWT signed with the shared key (HS256) or RSA key (RS256), short
  lived, verified by signature and expiry alone with no store lookup;
- refresh token: opaque random string, only its SHA-256 is persisted, revocable,
  looked up server-side on every use.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from authcore.config import Settings, settings as default_settings
from authcore.core.auth import (
    ACCESS_TOKEN_TYPE,
    JWTError,
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_refresh_token,
)
from authcore.core.errors import InvalidToken
from authcore.schemas.auth import AccessClaims
from authcore.stores.base import CredentialStore, bounded

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenIssuer:
    def __init__(
        self,
        store: CredentialStore,
        config: Settings = default_settings,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.config = config
        self.clock = clock

    @property
    def access_token_ttl_seconds(self) -> int:
        return self.config.access_token_expire_minutes * 60

    def refresh_expiry(self, now: datetime | None = None) -> datetime:
        return (now or self.clock()) + timedelta(days=self.config.refresh_token_expire_days)

    def issue_access_token(self, user_id: int) -> str:
        return create_access_token(user_id, now=self.clock(), config=self.config)

    async def issue_refresh_token(self, user_id: int) -> str:
        """Persist the record first; the plaintext is returned only once it is durable."""
        token = create_refresh_token()
        await bounded(
            self.store.add_refresh_token(user_id, hash_refresh_token(token), self.refresh_expiry()),
            self.config.storage_timeout_seconds,
            "add_refresh_token",
        )
        return token

    async def issue_pair(self, user_id: int) -> tuple[str, str]:
        refresh = await self.issue_refresh_token(user_id)
        return self.issue_access_token(user_id), refresh

    def verify_access_token(self, token: str) -> AccessClaims:
        """Signature and expiry check only. Raises InvalidToken."""
        try:
            payload = decode_token(token, self.config)
        except JWTError as e:
            raise InvalidToken("Invalid or expired token") from e
        if payload.get("type", ACCESS_TOKEN_TYPE) != ACCESS_TOKEN_TYPE:
            raise InvalidToken("Not an access token")
        try:
            user_id = int(payload["sub"])
            issued_at = datetime.fromtimestamp(int(payload.get("iat", 0)), tz=timezone.utc)
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidToken("Invalid token") from e
        return AccessClaims(user_id=user_id, issued_at=issued_at, expires_at=expires_at)
