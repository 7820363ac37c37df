"""One-time OAuth correlation state, PKCE code verifiers and scratch temp data.

Keys live under ``{prefix}state:``, ``{prefix}verifier:`` and ``{prefix}temp:``,
each with its own TTL started at insertion. State and verifier entries are
consumed by an atomic fetch-and-delete and so verify at most once. Temp data
is NOT deleted on read; it lives until its TTL lapses.
"""

from __future__ import annotations

import json
import logging
import secrets
import time
from typing import Any

from authcore.config import Settings, settings as default_settings
from authcore.core.errors import StateNotFound
from authcore.schemas.oauth import OAuthStateStats
from authcore.stores.base import TTL_MISSING, EphemeralStore, bounded

logger = logging.getLogger(__name__)

STATE_NAMESPACE = "state:"
VERIFIER_NAMESPACE = "verifier:"
TEMP_NAMESPACE = "temp:"


def _short(value: str) -> str:
    return value[:8]


class ExternalIdentityStateManager:
    def __init__(self, store: EphemeralStore, config: Settings = default_settings):
        self.store = store
        self.config = config
        self.prefix = config.oauth_key_prefix
        self.timeout = config.storage_timeout_seconds

    def _key(self, namespace: str, ident: str) -> str:
        return f"{self.prefix}{namespace}{ident}"

    async def create_state(self, user_id: int | str, provider: str) -> str:
        """Generate a state id bound to (user_id, provider) for the outbound redirect."""
        state = secrets.token_urlsafe(32)
        payload = {"userId": user_id, "provider": provider, "createdAt": int(time.time() * 1000)}
        await bounded(
            self.store.set(self._key(STATE_NAMESPACE, state), json.dumps(payload), self.config.oauth_state_ttl_seconds),
            self.timeout,
            "create_state",
        )
        logger.debug("OAuth state %s... created for provider=%s", _short(state), provider)
        return state

    async def verify_state(self, state: str) -> dict[str, Any] | None:
        """Consume the state. Returns its payload once; missing, expired or reused -> None."""
        if not state:
            return None
        raw = await bounded(self.store.getdel(self._key(STATE_NAMESPACE, state)), self.timeout, "verify_state")
        if raw is None:
            logger.warning("OAuth state %s... not found, expired or already used", _short(state))
            return None
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            # already deleted by the fetch
            logger.error("Failed to parse OAuth state %s...", _short(state))
            return None
        if not isinstance(data, dict):
            logger.error("OAuth state %s... has unexpected payload type", _short(state))
            return None
        return data

    async def require_state(self, state: str) -> dict[str, Any]:
        data = await self.verify_state(state)
        if data is None:
            raise StateNotFound("Invalid or expired OAuth state")
        return data

    async def store_code_verifier(self, state: str, code_verifier: str) -> None:
        await bounded(
            self.store.set(self._key(VERIFIER_NAMESPACE, state), code_verifier, self.config.code_verifier_ttl_seconds),
            self.timeout,
            "store_code_verifier",
        )

    async def get_code_verifier(self, state: str) -> str | None:
        """One-time read: the verifier is deleted in the same operation."""
        if not state:
            return None
        verifier = await bounded(
            self.store.getdel(self._key(VERIFIER_NAMESPACE, state)), self.timeout, "get_code_verifier"
        )
        if verifier is None:
            logger.warning("No PKCE verifier for state %s...", _short(state))
        return verifier

    async def require_code_verifier(self, state: str) -> str:
        verifier = await self.get_code_verifier(state)
        if verifier is None:
            raise StateNotFound("PKCE code verifier missing or expired")
        return verifier

    async def store_temp_data(self, key: str, data: Any, ttl: int | None = None) -> None:
        ttl = self.config.temp_data_ttl_seconds if ttl is None else ttl
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        await bounded(
            self.store.set(self._key(TEMP_NAMESPACE, key), json.dumps(data), ttl),
            self.timeout,
            "store_temp_data",
        )

    async def get_temp_data(self, key: str) -> Any | None:
        """Read without deleting; repeated reads return the same payload until TTL."""
        raw = await bounded(self.store.get(self._key(TEMP_NAMESPACE, key)), self.timeout, "get_temp_data")
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.error("Failed to parse temp OAuth data for key %s", key)
            return None

    async def _scan(self, namespace: str) -> list[str]:
        return await bounded(self.store.scan_keys(self.prefix + namespace), self.timeout, "scan_keys")

    async def cleanup(self) -> int:
        """Delete lapsed entries the back-end still holds. Redis evicts on its own, so 0 there."""
        deleted = await bounded(self.store.purge_expired(self.prefix), self.timeout, "purge_expired")
        if deleted:
            logger.info("Cleaned up %d expired OAuth entries", deleted)
        return deleted

    async def _count_live(self, namespace: str) -> int:
        count = 0
        for key in await self._scan(namespace):
            if await bounded(self.store.ttl(key), self.timeout, "ttl") != TTL_MISSING:
                count += 1
        return count

    async def get_stats(self) -> OAuthStateStats:
        return OAuthStateStats(
            active_states=await self._count_live(STATE_NAMESPACE),
            active_verifiers=await self._count_live(VERIFIER_NAMESPACE),
            temp_data_count=await self._count_live(TEMP_NAMESPACE),
        )
