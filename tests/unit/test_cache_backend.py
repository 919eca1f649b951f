"""
Unit tests for the cache backends.
"""

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from emerge.core.cache.backend import InMemoryCacheBackend, RedisCacheBackend
from emerge.core.exceptions import CacheError


class StepClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.unit
class TestInMemoryCacheBackend:
    async def test_set_get_delete(self):
        backend = InMemoryCacheBackend()

        assert await backend.set_json("k", {"a": [1, 2]}, ttl_seconds=10)
        assert await backend.get_json("k") == {"a": [1, 2]}
        assert await backend.delete("k") == 1
        assert await backend.delete("k") == 0
        assert await backend.get_json("k") is None

    async def test_entry_expires(self):
        clock = StepClock()
        backend = InMemoryCacheBackend(clock=clock)
        await backend.set_json("k", 1, ttl_seconds=5)

        clock.now = 4.9
        assert await backend.get_json("k") == 1

        clock.now = 5.0
        assert await backend.get_json("k") is None
        assert len(backend) == 0

    async def test_write_sweeps_expired_keys_never_read_again(self):
        clock = StepClock()
        backend = InMemoryCacheBackend(clock=clock)
        for user in range(3):
            await backend.set_json(f"insight:u{user}", user, ttl_seconds=5)
        await backend.set_json("insight:long", "x", ttl_seconds=60)

        clock.now = 10.0
        await backend.set_json("insight:u9", 9, ttl_seconds=5)

        assert len(backend) == 2
        assert await backend.get_json("insight:long") == "x"

    async def test_unserializable_value_raises(self):
        backend = InMemoryCacheBackend()

        with pytest.raises(TypeError):
            await backend.set_json("k", object(), ttl_seconds=5)


@pytest.mark.unit
class TestRedisCacheBackend:
    @pytest.fixture
    def client(self, mocker):
        client = mocker.MagicMock()
        client.get = mocker.AsyncMock(return_value=None)
        client.set = mocker.AsyncMock(return_value=True)
        client.delete = mocker.AsyncMock(return_value=1)
        client.aclose = mocker.AsyncMock()
        return client

    async def test_set_serializes_with_ttl(self, client):
        backend = RedisCacheBackend(client)

        await backend.set_json("emerge:v1:insight:u1", {"level": 2}, ttl_seconds=900)

        client.set.assert_awaited_once_with(
            "emerge:v1:insight:u1", '{"level":2}', ex=900
        )

    async def test_get_decodes_json(self, client):
        client.get.return_value = '{"text":"hi","level":1,"streak":0}'
        backend = RedisCacheBackend(client)

        assert await backend.get_json("k") == {"text": "hi", "level": 1, "streak": 0}

    async def test_transport_error_becomes_cache_error(self, client):
        client.get.side_effect = RedisConnectionError("connection refused")
        backend = RedisCacheBackend(client)

        with pytest.raises(CacheError) as exc_info:
            await backend.get_json("k")

        assert exc_info.value.operation == "GET"
        assert exc_info.value.is_retryable

    async def test_close(self, client):
        await RedisCacheBackend(client).close()

        client.aclose.assert_awaited_once()
