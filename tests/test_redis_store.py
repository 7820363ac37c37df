"""Integration tests for RedisEphemeralStore using fakeredis."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ReadOnlyError, ResponseError

from authcore.core.errors import StorageRejected, StorageUnavailable
from authcore.services.oauth_state import ExternalIdentityStateManager
from authcore.stores.base import TTL_MISSING
from authcore.stores.redis_store import RedisEphemeralStore


@pytest.fixture
def redis_store(fake_redis):
    return RedisEphemeralStore(fake_redis)


@pytest.fixture
def redis_manager(redis_store, config):
    return ExternalIdentityStateManager(redis_store, config)


@pytest.mark.asyncio
async def test_set_sets_ttl(redis_store, fake_redis):
    await redis_store.set("oauth:temp:k", "v", 600)
    assert 0 < await fake_redis.ttl("oauth:temp:k") <= 600
    assert await redis_store.ttl("oauth:temp:k") > 0
    assert await redis_store.ttl("missing") == TTL_MISSING


@pytest.mark.asyncio
async def test_getdel_is_one_time(redis_store):
    await redis_store.set("oauth:verifier:s", "v", 600)
    assert await redis_store.getdel("oauth:verifier:s") == "v"
    assert await redis_store.getdel("oauth:verifier:s") is None


@pytest.mark.asyncio
async def test_state_roundtrip_over_redis(redis_manager):
    state = await redis_manager.create_state(5, "instagram")
    data = await redis_manager.verify_state(state)
    assert data["userId"] == 5 and data["provider"] == "instagram"
    assert await redis_manager.verify_state(state) is None


@pytest.mark.asyncio
async def test_concurrent_verify_over_redis(redis_manager):
    state = await redis_manager.create_state(5, "instagram")
    results = await asyncio.gather(*(redis_manager.verify_state(state) for _ in range(5)))
    assert sum(r is not None for r in results) == 1


@pytest.mark.asyncio
async def test_temp_data_over_redis_expires(redis_manager):
    await redis_manager.store_temp_data("k", {"a": 1}, 1)
    assert await redis_manager.get_temp_data("k") == {"a": 1}
    assert await redis_manager.get_temp_data("k") == {"a": 1}
    await asyncio.sleep(1.2)
    assert await redis_manager.get_temp_data("k") is None


@pytest.mark.asyncio
async def test_stats_and_cleanup_over_redis(redis_manager, fake_redis):
    await redis_manager.create_state(1, "gmail")
    await redis_manager.store_code_verifier("s", "v")
    await redis_manager.store_temp_data("t", {}, 600)
    await fake_redis.set("unrelated", "x")
    stats = await redis_manager.get_stats()
    assert (stats.active_states, stats.active_verifiers, stats.temp_data_count) == (1, 1, 1)
    # Redis evicts eagerly: nothing lapsed is ever listed
    assert await redis_manager.cleanup() == 0
    assert await fake_redis.get("unrelated") == "x"


def _mock_client() -> MagicMock:
    client = MagicMock()
    client.register_script.return_value = AsyncMock(return_value="from-lua")
    return client


@pytest.mark.asyncio
async def test_redis_errors_become_storage_unavailable():
    client = _mock_client()
    client.get = AsyncMock(side_effect=RedisConnectionError("connection refused"))
    client.getdel = AsyncMock(side_effect=RedisConnectionError("connection refused"))
    store = RedisEphemeralStore(client)
    with pytest.raises(StorageUnavailable):
        await store.get("k")
    with pytest.raises(StorageUnavailable):
        await store.getdel("k")


@pytest.mark.asyncio
async def test_getdel_falls_back_to_lua_on_old_server():
    client = _mock_client()
    client.getdel = AsyncMock(side_effect=ResponseError("unknown command 'GETDEL'"))
    store = RedisEphemeralStore(client)
    assert await store.getdel("k") == "from-lua"
    assert await store.getdel("k") == "from-lua"
    # native command is not retried once the server rejected it
    assert client.getdel.await_count == 1


@pytest.mark.asyncio
async def test_manager_timeout_is_storage_unavailable(config):
    client = _mock_client()

    async def hang(*args, **kwargs):
        await asyncio.sleep(1)

    client.set = hang
    manager = ExternalIdentityStateManager(
        RedisEphemeralStore(client),
        config.model_copy(update={"storage_timeout_seconds": 0.05}),
    )
    with pytest.raises(StorageUnavailable):
        await manager.create_state(1, "gmail")


@pytest.mark.asyncio
async def test_scan_treats_prefix_glob_characters_literally(fake_redis, config):
    manager = ExternalIdentityStateManager(
        RedisEphemeralStore(fake_redis),
        config.model_copy(update={"oauth_key_prefix": "auth[1]*:"}),
    )
    await manager.create_state(1, "gmail")
    await fake_redis.set("auth1X:state:foreign", "{}")
    await fake_redis.set("auth[1]*Xstate:foreign", "{}")
    stats = await manager.get_stats()
    assert stats.active_states == 1


@pytest.mark.asyncio
async def test_purge_expired_is_noop_on_redis(redis_store, fake_redis):
    await redis_store.set("oauth:temp:k", "v", 600)
    assert await redis_store.purge_expired("oauth:") == 0
    assert await fake_redis.get("oauth:temp:k") == "v"


@pytest.mark.asyncio
async def test_getdel_command_error_is_rejected_not_unavailable():
    client = _mock_client()
    client.getdel = AsyncMock(
        side_effect=ResponseError("WRONGTYPE Operation against a key holding the wrong kind of value")
    )
    store = RedisEphemeralStore(client)
    with pytest.raises(StorageRejected):
        await store.getdel("k")
    # still a GETDEL-capable server
    with pytest.raises(StorageRejected):
        await store.getdel("k")
    assert client.getdel.await_count == 2


@pytest.mark.asyncio
async def test_command_errors_split_by_kind():
    client = _mock_client()
    client.get = AsyncMock(side_effect=ResponseError("WRONGTYPE Operation against a key"))
    client.set = AsyncMock(side_effect=ReadOnlyError("You can't write against a read only replica."))
    store = RedisEphemeralStore(client)
    with pytest.raises(StorageRejected) as rejected:
        await store.get("k")
    assert not isinstance(rejected.value, StorageUnavailable)
    with pytest.raises(StorageUnavailable):
        await store.set("k", "v", 10)
