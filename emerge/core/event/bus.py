"""
EventBus: async in-process publish/subscribe with tiered concurrency.

Purpose
-------
Decouple the progression engine from its side effects. Services return
domain events; the dispatcher publishes them here after the commit, and
collaborators such as the level-up notifier subscribe.

Responsibilities
----------------
- Register/unregister listeners with priorities
- Publish to exact-name and prefix-wildcard ("progression.*") subscribers
- Execute listeners per tier:
  * CRITICAL / HIGH: sequential, awaited, with timeout
  * NORMAL: concurrent (gather), awaited
  * LOW: fire-and-forget background tasks
- Error isolation: a failing listener is logged and never blocks the others
  or reaches the publisher

Design Decisions
----------------
- Instance-based so every test and every engine gets its own bus.
- Sync callbacks run in the default executor to keep the loop free.
"""

from __future__ import annotations

import asyncio
import inspect
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Optional

from emerge.core.config.manager import ConfigManager
from emerge.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)
from emerge.core.logging.logger import get_logger

logger = get_logger(__name__)


@dataclass
class EventBusMetrics:
    events_published: dict[str, int] = field(default_factory=dict)
    listener_errors: dict[str, int] = field(default_factory=dict)

    def record_publish(self, event_name: str) -> None:
        self.events_published[event_name] = self.events_published.get(event_name, 0) + 1

    def record_error(self, event_name: str) -> None:
        self.listener_errors[event_name] = self.listener_errors.get(event_name, 0) + 1


class EventBus:
    """
    In-process EventBus.

    Examples
    --------
    >>> bus = EventBus()
    >>> bus.subscribe("progression.leveled_up", on_level_up)
    >>> await bus.publish("progression.leveled_up", {"user_id": "u1", "new_level": 2})
    """

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        *,
        critical_timeout_seconds: Optional[float] = None,
        high_timeout_seconds: Optional[float] = None,
    ) -> None:
        self._listeners: dict[str, list[EventListener]] = defaultdict(list)
        self._background_tasks: set[asyncio.Task[Any]] = set()
        self.metrics = EventBusMetrics()

        self._critical_timeout = self._load_timeout(
            config_manager,
            "core.event.listener_timeout.critical_seconds",
            critical_timeout_seconds,
            default=5.0,
        )
        self._high_timeout = self._load_timeout(
            config_manager,
            "core.event.listener_timeout.high_seconds",
            high_timeout_seconds,
            default=5.0,
        )

    @staticmethod
    def _load_timeout(
        config_manager: Optional[ConfigManager],
        key: str,
        override: Optional[float],
        default: float,
    ) -> float:
        if override is not None:
            return float(override)
        if config_manager is None:
            return default
        return float(config_manager.get(key, default))

    # ------------------------------------------------------------------ #
    # Subscription API
    # ------------------------------------------------------------------ #

    @staticmethod
    def _validate_callback_signature(callback: CallbackType) -> None:
        try:
            sig = inspect.signature(callback)
        except (TypeError, ValueError):
            return

        params = list(sig.parameters.values())
        if len(params) != 1:
            callback_name = getattr(callback, "__qualname__", repr(callback))
            raise ValueError(
                f"Event listener must accept exactly 1 parameter (EventPayload), "
                f"got {len(params)} parameters for '{callback_name}'"
            )

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
    ) -> str:
        """
        Subscribe a callback to an event name or a "prefix.*" pattern.

        Returns the listener identifier. Registering the same identifier for
        the same event twice is a no-op.

        Raises
        ------
        ValueError:
            If the callback does not take exactly one parameter.
        """
        self._validate_callback_signature(callback)
        listener = EventListener.from_callback(
            event_name=event_name,
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )

        bucket = self._listeners[event_name]
        if any(existing.identifier == listener.identifier for existing in bucket):
            logger.warning(
                "EventBus: duplicate listener prevented",
                extra={"event_name": event_name, "listener_id": listener.identifier},
            )
            return listener.identifier

        bucket.append(listener)
        bucket.sort(key=lambda lst: lst.priority.value)
        logger.debug(
            "EventBus: subscribed listener",
            extra={
                "event_name": event_name,
                "listener_id": listener.identifier,
                "priority": listener.priority.name,
                "once": listener.once,
            },
        )
        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        bucket = self._listeners.get(event_name, [])
        remaining = [lst for lst in bucket if lst.identifier != identifier]
        removed = len(remaining) != len(bucket)
        if removed:
            self._listeners[event_name] = remaining
        return removed

    def clear(self) -> None:
        self._listeners.clear()

    def get_listener_count(self, event_name: Optional[str] = None) -> int:
        if event_name is None:
            return sum(len(bucket) for bucket in self._listeners.values())
        return len(self._matching_listeners(event_name))

    def _matching_listeners(self, event_name: str) -> list[EventListener]:
        matched: list[EventListener] = []
        for pattern, bucket in self._listeners.items():
            if pattern in (event_name, "*"):
                matched.extend(bucket)
            elif pattern.endswith(".*") and event_name.startswith(pattern[:-1]):
                matched.extend(bucket)
        matched.sort(key=lambda lst: lst.priority.value)
        return matched

    def _extract_listeners(self, event_name: str) -> list[EventListener]:
        """Collect matching listeners and prune `once` listeners before running."""
        listeners = self._matching_listeners(event_name)
        once_ids = {lst.identifier for lst in listeners if lst.once}
        if once_ids:
            for pattern, bucket in list(self._listeners.items()):
                self._listeners[pattern] = [
                    lst for lst in bucket if lst.identifier not in once_ids
                ]
        return listeners

    # ------------------------------------------------------------------ #
    # Publish API
    # ------------------------------------------------------------------ #

    async def publish(self, event_name: str, data: EventPayload) -> list[Any]:
        """
        Publish an event. Returns results of CRITICAL/HIGH/NORMAL listeners.

        Listener failures are logged and surface as None in the results.
        """
        self.metrics.record_publish(event_name)
        listeners = self._extract_listeners(event_name)
        if not listeners:
            logger.debug("EventBus: no listeners for event", extra={"event_name": event_name})
            return []

        results: list[Any] = []
        for listener in listeners:
            if listener.priority is ListenerPriority.CRITICAL:
                results.append(
                    await self._run_with_timeout(listener, event_name, data, self._critical_timeout)
                )
            elif listener.priority is ListenerPriority.HIGH:
                results.append(
                    await self._run_with_timeout(listener, event_name, data, self._high_timeout)
                )

        normal = [lst for lst in listeners if lst.priority is ListenerPriority.NORMAL]
        if normal:
            results.extend(
                await asyncio.gather(
                    *(self._run_listener(lst, event_name, data) for lst in normal)
                )
            )

        for listener in listeners:
            if listener.priority is ListenerPriority.LOW:
                task = asyncio.get_running_loop().create_task(
                    self._run_listener(listener, event_name, data),
                    name=f"eventbus-low-{event_name}-{listener.identifier}",
                )
                self._background_tasks.add(task)
                task.add_done_callback(self._background_tasks.discard)

        return results

    async def drain(self) -> None:
        """Wait for outstanding LOW-tier tasks. Used on shutdown and in tests."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks))

    async def _run_with_timeout(
        self,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        timeout: Optional[float],
    ) -> Any:
        if timeout is None or timeout <= 0:
            return await self._run_listener(listener, event_name, payload)
        try:
            return await asyncio.wait_for(
                self._run_listener(listener, event_name, payload), timeout=timeout
            )
        except asyncio.TimeoutError:
            self.metrics.record_error(event_name)
            logger.error(
                "EventBus listener timeout",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "priority": listener.priority.name,
                    "timeout_seconds": timeout,
                },
            )
            return None

    async def _run_listener(
        self,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
    ) -> Any:
        try:
            if inspect.iscoroutinefunction(listener.callback):
                return await listener.callback(payload)
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, listener.callback, payload)
        except Exception as exc:
            self.metrics.record_error(event_name)
            logger.error(
                "EventBus listener failed",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "priority": listener.priority.name,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            return None
