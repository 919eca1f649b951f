"""
Caching subsystem.
"""

from emerge.core.cache.backend import (
    CacheBackend,
    InMemoryCacheBackend,
    RedisCacheBackend,
)
from emerge.core.cache.insight import CacheStats, InsightCache

__all__ = [
    "CacheBackend",
    "InMemoryCacheBackend",
    "RedisCacheBackend",
    "InsightCache",
    "CacheStats",
]
