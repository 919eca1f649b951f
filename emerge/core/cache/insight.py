"""
Insight caching.

Purpose
-------
Short-lived cache for the per-user insight text shown on the home screen.

Key Format
----------
`{cache.key_prefix}:insight:{user_id}`, e.g. `emerge:v1:insight:u123`.

Architecture Notes
------------------
- TTL from ConfigManager (`cache.ttl.insight`, default 900s).
- Values are served stale until they expire. Progression updates never
  invalidate them, so a user can see an outdated insight for up to one TTL.
- Any backend failure is logged and reported as a miss (reads) or False
  (writes). Callers never see cache exceptions.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from emerge.core.cache.backend import CacheBackend
from emerge.core.config.manager import ConfigManager
from emerge.core.logging.logger import get_logger

logger = get_logger(__name__)


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    sets: int = 0
    errors: int = 0


class InsightCache:
    """Typed access to cached insight payloads."""

    INSIGHT_KEY = "{prefix}:insight:{user_id}"
    DEFAULT_TTL_SECONDS = 900

    def __init__(self, backend: CacheBackend, config_manager: ConfigManager) -> None:
        self._backend = backend
        self._config = config_manager
        self.stats = CacheStats()

    @property
    def ttl_seconds(self) -> int:
        return int(self._config.get("cache.ttl.insight", self.DEFAULT_TTL_SECONDS))

    def key_for(self, user_id: str) -> str:
        prefix = self._config.get("cache.key_prefix", "emerge:v1")
        return self.INSIGHT_KEY.format(prefix=prefix, user_id=user_id)

    async def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        start_time = time.perf_counter()
        key = self.key_for(user_id)
        try:
            data = await self._backend.get_json(key)
        except Exception as e:
            self.stats.errors += 1
            self.stats.misses += 1
            logger.error(
                "Exception getting cached insight",
                extra={
                    "user_id": user_id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                    "operation": "get_cached_insight",
                },
                exc_info=True,
            )
            return None

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        if data:
            self.stats.hits += 1
            logger.debug(
                "Cache HIT: insight",
                extra={"user_id": user_id, "latency_ms": round(elapsed_ms, 2)},
            )
            return data

        self.stats.misses += 1
        logger.debug(
            "Cache MISS: insight",
            extra={"user_id": user_id, "latency_ms": round(elapsed_ms, 2)},
        )
        return None

    async def set(
        self, user_id: str, payload: Dict[str, Any], ttl: Optional[int] = None
    ) -> bool:
        key = self.key_for(user_id)
        ttl = self.ttl_seconds if ttl is None else ttl
        try:
            success = await self._backend.set_json(key, payload, ttl_seconds=ttl)
        except Exception as e:
            self.stats.errors += 1
            logger.error(
                "Exception caching insight",
                extra={
                    "user_id": user_id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                    "operation": "cache_insight",
                },
                exc_info=True,
            )
            return False

        if success:
            self.stats.sets += 1
            logger.debug(
                "Cached insight", extra={"user_id": user_id, "ttl_seconds": ttl}
            )
        return success

    async def invalidate(self, user_id: str) -> bool:
        try:
            return await self._backend.delete(self.key_for(user_id)) > 0
        except Exception as e:
            self.stats.errors += 1
            logger.error(
                "Exception invalidating insight",
                extra={
                    "user_id": user_id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                    "operation": "invalidate_insight",
                },
            )
            return False
