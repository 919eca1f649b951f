"""
Notifications module.

Exports:
- LevelUpNotification
- LevelUpNotifier
- NotificationSink, InMemoryNotificationSink
"""

from .service import (
    InMemoryNotificationSink,
    LevelUpNotification,
    LevelUpNotifier,
    NotificationSink,
)

__all__ = [
    "InMemoryNotificationSink",
    "LevelUpNotification",
    "LevelUpNotifier",
    "NotificationSink",
]
