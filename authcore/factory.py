"""Wire stores and services from Settings. Call aclose() on shutdown."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from authcore.config import Settings, settings as default_settings
from authcore.db.session import build_engine, build_session_maker, init_db
from authcore.services.oauth_state import ExternalIdentityStateManager
from authcore.services.sessions import SessionRotationEngine
from authcore.services.token_issuer import TokenIssuer
from authcore.stores.redis_store import RedisEphemeralStore
from authcore.stores.sql import SqlCredentialStore

logger = logging.getLogger(__name__)


@dataclass
class AuthCore:
    engine: AsyncEngine
    ephemeral: RedisEphemeralStore
    issuer: TokenIssuer
    sessions: SessionRotationEngine
    oauth_state: ExternalIdentityStateManager

    async def aclose(self) -> None:
        await self.ephemeral.aclose()
        await self.engine.dispose()


async def build_auth_core(config: Settings = default_settings, *, create_tables: bool = False) -> AuthCore:
    config.validate_jwt_config()
    engine = build_engine(config)
    if create_tables:
        await init_db(engine)
    credentials = SqlCredentialStore(build_session_maker(engine))
    ephemeral = RedisEphemeralStore.from_url(config.redis_url, socket_timeout=config.storage_timeout_seconds)
    issuer = TokenIssuer(credentials, config)
    logger.info("authcore ready (jwt=%s)", "RS256" if config.use_rs256 else config.jwt_algorithm)
    return AuthCore(
        engine=engine,
        ephemeral=ephemeral,
        issuer=issuer,
        sessions=SessionRotationEngine(credentials, issuer),
        oauth_state=ExternalIdentityStateManager(ephemeral, config),
    )
