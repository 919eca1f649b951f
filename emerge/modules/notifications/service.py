"""
Level-up notifications.

Purpose
-------
Turn `progression.leveled_up` events into in-app notification records and
hand them to a NotificationSink. Delivery (push, email, storage) is the
sink's concern.

Record Shape
------------
{
    "user_id": "...",
    "type": "level_up",
    "title": "🎉 Level Up!",
    "body": "Congratulations! You've reached level 3!",
    "data": {"oldLevel": 2, "newLevel": 3},
    "read": false,
    "created_at": "<ISO-8601 UTC>"
}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, List, Optional, Protocol

from emerge.core.event.bus import EventBus
from emerge.core.event.types import EventPayload, ListenerPriority
from emerge.core.logging.logger import get_logger
from emerge.domain.models.progression import LEVELED_UP

logger = get_logger(__name__)

LEVEL_UP_TITLE = "🎉 Level Up!"
LEVEL_UP_BODY = "Congratulations! You've reached level {level}!"


@dataclass(frozen=True)
class LevelUpNotification:
    user_id: str
    old_level: int
    new_level: int
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    read: bool = False

    KIND: ClassVar[str] = "level_up"

    @property
    def title(self) -> str:
        return LEVEL_UP_TITLE

    @property
    def body(self) -> str:
        return LEVEL_UP_BODY.format(level=self.new_level)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "type": self.KIND,
            "title": self.title,
            "body": self.body,
            "data": {"oldLevel": self.old_level, "newLevel": self.new_level},
            "read": self.read,
            "created_at": self.created_at.isoformat(),
        }


class NotificationSink(Protocol):
    async def send(self, notification: LevelUpNotification) -> None: ...


class InMemoryNotificationSink:
    """Collects notifications in a list. Used by tests and local runs."""

    def __init__(self) -> None:
        self.sent: List[LevelUpNotification] = []

    async def send(self, notification: LevelUpNotification) -> None:
        self.sent.append(notification)


class LevelUpNotifier:
    """
    Event bus listener for level-ups.

    Usage
    -----
    >>> notifier = LevelUpNotifier(sink)
    >>> notifier.register(bus)
    """

    LISTENER_ID = "notifications.level_up"

    def __init__(self, sink: NotificationSink) -> None:
        self._sink = sink

    def register(self, bus: EventBus) -> str:
        return bus.subscribe(
            LEVELED_UP,
            self.on_level_up,
            priority=ListenerPriority.NORMAL,
            identifier=self.LISTENER_ID,
        )

    async def on_level_up(self, payload: EventPayload) -> Optional[LevelUpNotification]:
        try:
            notification = LevelUpNotification(
                user_id=str(payload["user_id"]),
                old_level=int(payload["old_level"]),
                new_level=int(payload["new_level"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning(
                "Ignoring level-up event with invalid payload",
                extra={"error_type": type(exc).__name__, "payload_keys": sorted(payload)},
            )
            return None

        try:
            await self._sink.send(notification)
        except Exception as exc:
            logger.error(
                "Failed to send level-up notification",
                extra={
                    "user_id": notification.user_id,
                    "new_level": notification.new_level,
                    "error_type": type(exc).__name__,
                    "error_message": str(exc),
                },
                exc_info=True,
            )
            return None

        logger.info(
            "Level-up notification sent",
            extra={
                "user_id": notification.user_id,
                "old_level": notification.old_level,
                "new_level": notification.new_level,
            },
        )
        return notification
