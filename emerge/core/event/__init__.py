"""
In-process event system.
"""

from emerge.core.event.bus import EventBus, EventBusMetrics
from emerge.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)

__all__ = [
    "EventBus",
    "EventBusMetrics",
    "EventListener",
    "EventPayload",
    "ListenerPriority",
    "CallbackType",
]
