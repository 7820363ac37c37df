"""SqlCredentialStore against PostgreSQL (DATABASE_URL). Skipped when the database is unreachable."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.exc import InterfaceError, OperationalError, ProgrammingError

from authcore.config import settings
from authcore.core.errors import DuplicateIdentity, InvalidToken
from authcore.db.base import Base
from authcore.db.session import build_engine, build_session_maker, init_db
from authcore.schemas.auth import AuthResult
from authcore.services.sessions import SessionRotationEngine
from authcore.services.token_issuer import TokenIssuer
from authcore.stores.base import RotationOutcome
from authcore.stores.sql import SqlCredentialStore


# only a missing server skips; schema or model errors must fail the run
_UNREACHABLE = (OSError, OperationalError, InterfaceError)


async def _truncate_all(engine):
    """Truncate all tables in reverse dependency order so tests start clean."""
    tables = [t.name for t in reversed(Base.metadata.sorted_tables)]
    async with engine.begin() as conn:
        await conn.execute(text("TRUNCATE " + ", ".join(tables) + " RESTART IDENTITY CASCADE"))


@pytest_asyncio.fixture
async def sql_store():
    engine = build_engine(settings)
    try:
        await init_db(engine)
    except _UNREACHABLE as e:
        await engine.dispose()
        pytest.skip(f"PostgreSQL not available: {type(e).__name__}")
    await _truncate_all(engine)
    yield SqlCredentialStore(build_session_maker(engine))
    await engine.dispose()


def _later(days: int = 7) -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=days)


@pytest.mark.asyncio
async def test_create_and_lookup_user(sql_store):
    user = await sql_store.create_user("a@x.com", "hash", "A")
    assert user.id > 0
    assert user.role == "user"
    assert (await sql_store.get_user_by_email("a@x.com")).id == user.id
    assert (await sql_store.get_user_by_id(user.id)).email == "a@x.com"
    assert await sql_store.get_user_by_email("b@x.com") is None


@pytest.mark.asyncio
async def test_duplicate_email_raises(sql_store):
    await sql_store.create_user("a@x.com", "hash", None)
    with pytest.raises(DuplicateIdentity):
        await sql_store.create_user("a@x.com", "hash2", None)


@pytest.mark.asyncio
async def test_rotate_outcomes(sql_store):
    user = await sql_store.create_user("a@x.com", None, None)
    now = datetime.now(timezone.utc)
    await sql_store.add_refresh_token(user.id, "h1", _later())
    rotated = await sql_store.rotate_refresh_token("h1", "h2", _later(), now)
    assert rotated.outcome is RotationOutcome.ROTATED
    assert rotated.replacement.token_hash == "h2"
    assert (await sql_store.get_refresh_token("h1")).revoked is True
    assert (await sql_store.rotate_refresh_token("h1", "h3", _later(), now)).outcome is RotationOutcome.INVALID
    assert await sql_store.get_refresh_token("h3") is None

    await sql_store.add_refresh_token(user.id, "old", now - timedelta(seconds=1))
    expired = await sql_store.rotate_refresh_token("old", "h4", _later(), now)
    assert expired.outcome is RotationOutcome.EXPIRED
    assert (await sql_store.get_refresh_token("old")).revoked is True
    assert await sql_store.get_refresh_token("h4") is None


@pytest.mark.asyncio
async def test_revoke_is_one_way(sql_store):
    user = await sql_store.create_user("a@x.com", None, None)
    await sql_store.add_refresh_token(user.id, "h1", _later())
    assert await sql_store.revoke_refresh_token("h1") is True
    assert await sql_store.revoke_refresh_token("h1") is False
    assert await sql_store.revoke_refresh_token("missing") is False


@pytest.mark.asyncio
async def test_concurrent_refresh_single_winner_postgres(sql_store, config):
    engine = SessionRotationEngine(sql_store, TokenIssuer(sql_store, config))
    registered = await engine.register("race@x.com", "Secret123!")
    results = await asyncio.gather(
        *(engine.refresh(registered.refresh_token) for _ in range(4)),
        return_exceptions=True,
    )
    assert sum(isinstance(r, AuthResult) for r in results) == 1
    assert all(type(r) is InvalidToken for r in results if not isinstance(r, AuthResult))


def test_only_connection_failures_skip():
    assert isinstance(ConnectionRefusedError(), _UNREACHABLE)
    assert isinstance(OperationalError("connect", {}, Exception("refused")), _UNREACHABLE)
    assert not isinstance(ProgrammingError("CREATE TABLE", {}, Exception("syntax")), _UNREACHABLE)
    assert not isinstance(AttributeError("bad model"), _UNREACHABLE)
