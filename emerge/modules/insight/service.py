"""
Insight Service

Purpose
-------
Produce the short motivational line shown on a user's home screen from
their current level and streak, cached per user.

Read Path
---------
1. Cache hit: return the cached insight as is, however stale, until it
   expires.
2. Miss: read the progression record, pick the message, cache it.
3. No record yet: return the onboarding message without caching it, so the
   first applied event is reflected on the next read.

Cache failures degrade to a direct computation (InsightCache never raises).
Progression writes do not invalidate the cache.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from logging import Logger
from typing import Any, Mapping, Optional

from emerge.core.cache.insight import InsightCache
from emerge.core.config.manager import ConfigManager
from emerge.core.event.bus import EventBus
from emerge.core.logging.logger import get_logger
from emerge.domain.models.progression import ProgressionRecord
from emerge.modules.progression.store import ProgressionStore
from emerge.modules.shared.base_service import BaseService

ONBOARDING_TEXT = "Start your journey by completing your first habit!"
COMMITTED_TEXT = "Amazing! Your {streak}-day streak shows real commitment."
MOMENTUM_TEXT = "{streak} days strong! Keep building momentum."
LEVEL_TEXT = "Level {level} achieved! Progress over perfection."
BEGINNER_TEXT = "Every expert was once a beginner. Start with one habit."


@dataclass(frozen=True)
class Insight:
    text: str
    level: int
    streak: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Insight:
        return cls(
            text=str(data["text"]),
            level=int(data["level"]),
            streak=int(data["streak"]),
        )


class InsightService(BaseService):
    """Cached read-side insight for a user's progression."""

    def __init__(
        self,
        store: ProgressionStore,
        cache: InsightCache,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Optional[Logger] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger or get_logger(__name__))
        self._store = store
        self._cache = cache
        self._committed_days = int(self.get_config("insight.streak_committed_days", 7))
        self._momentum_days = int(self.get_config("insight.streak_momentum_days", 3))

    def compose(self, record: ProgressionRecord) -> Insight:
        """Pick the message for a record. Streak messages win over level."""
        if record.streak >= self._committed_days:
            text = COMMITTED_TEXT.format(streak=record.streak)
        elif record.streak >= self._momentum_days:
            text = MOMENTUM_TEXT.format(streak=record.streak)
        elif record.level > 1:
            text = LEVEL_TEXT.format(level=record.level)
        else:
            text = BEGINNER_TEXT
        return Insight(text=text, level=record.level, streak=record.streak)

    async def get_insight(self, user_id: str) -> Insight:
        """
        Insight for `user_id`, possibly up to one cache TTL stale.

        Raises:
            ValidationError: If user_id is blank
        """
        self.validate_user_id(user_id)

        cached = await self._cache.get(user_id)
        if cached is not None:
            try:
                return Insight.from_dict(cached)
            except (KeyError, TypeError, ValueError) as exc:
                self.log_error("read_cached_insight", exc, user_id=user_id)

        snapshot = await self._store.get(user_id)
        if snapshot is None:
            return Insight(text=ONBOARDING_TEXT, level=1, streak=0)

        insight = self.compose(snapshot.record)
        await self._cache.set(user_id, insight.to_dict())
        self.log_operation(
            "get_insight", user_id=user_id, level=insight.level, streak=insight.streak
        )
        return insight
