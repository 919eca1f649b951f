"""
Cache backends: Redis for deployments, in-memory for tests and local runs.

Both speak JSON documents with a per-key TTL in seconds. Serialization
failures raise; transport failures surface as CacheError so the typed
caches above can degrade gracefully.
"""

from __future__ import annotations

import json
import time
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

from redis.asyncio import Redis
from redis.exceptions import RedisError

from emerge.core.config.config import Config
from emerge.core.exceptions import CacheError
from emerge.core.logging.logger import get_logger

logger = get_logger(__name__)


class CacheBackend(Protocol):
    async def get_json(self, key: str) -> Optional[Any]: ...

    async def set_json(self, key: str, value: Any, ttl_seconds: int) -> bool: ...

    async def delete(self, key: str) -> int: ...


def _dumps(key: str, value: Any) -> str:
    try:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        logger.error(
            "Failed to serialize value as JSON",
            extra={
                "key": key,
                "value_type": type(value).__name__,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )
        raise


class RedisCacheBackend:
    """JSON-over-Redis backend using `redis.asyncio`."""

    def __init__(self, client: Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: Optional[str] = None) -> RedisCacheBackend:
        return cls(Redis.from_url(url or Config.REDIS_URL, decode_responses=True))

    async def get_json(self, key: str) -> Optional[Any]:
        try:
            raw = await self._client.get(key)
        except RedisError as exc:
            raise CacheError("GET", key, exc) from exc
        if raw is None:
            return None
        return json.loads(raw)

    async def set_json(self, key: str, value: Any, ttl_seconds: int) -> bool:
        payload = _dumps(key, value)
        try:
            return bool(await self._client.set(key, payload, ex=ttl_seconds))
        except RedisError as exc:
            raise CacheError("SET", key, exc) from exc

    async def delete(self, key: str) -> int:
        try:
            return int(await self._client.delete(key))
        except RedisError as exc:
            raise CacheError("DEL", key, exc) from exc

    async def close(self) -> None:
        await self._client.aclose()


class InMemoryCacheBackend:
    """
    Process-local backend with monotonic-clock expiry.

    The clock is injectable so tests can step past a TTL without sleeping.
    Expired entries are dropped when read and swept on every write, so keys
    that are never read again do not accumulate.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: Dict[str, Tuple[float, str]] = {}

    async def get_json(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, payload = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return json.loads(payload)

    async def set_json(self, key: str, value: Any, ttl_seconds: int) -> bool:
        payload = _dumps(key, value)
        now = self._clock()
        self._prune(now)
        self._entries[key] = (now + ttl_seconds, payload)
        return True

    async def delete(self, key: str) -> int:
        return 1 if self._entries.pop(key, None) is not None else 0

    def __len__(self) -> int:
        return len(self._entries)

    def _prune(self, now: float) -> None:
        expired = [key for key, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
