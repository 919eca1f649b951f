"""
Service Container

Purpose
-------
Composition root for the engine: wires the progression store, insight
cache, event bus and notification sink into the services and registers
event listeners.

Responsibilities
----------------
- Construct ProgressionService, InsightService and ActivityDispatcher
- Subscribe LevelUpNotifier to the event bus
- Manage service lifecycle (initialize, shutdown)
- Report a small health snapshot

Non-Responsibilities
--------------------
- Creating the database engine or Redis client (the caller owns those and
  passes in the store and cache backend built on them)
- Business logic

Architecture Notes
------------------
- Storage is injected, so the same container runs against
  InMemoryProgressionStore in tests and SqlProgressionStore in production.
- Services follow the constructor pattern (..., config_manager, event_bus,
  logger).
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Dict, Optional

from emerge.core.cache.backend import CacheBackend, InMemoryCacheBackend
from emerge.core.cache.insight import InsightCache
from emerge.core.config.manager import ConfigManager
from emerge.core.database.retry_policy import TransactionRetryPolicy
from emerge.core.event.bus import EventBus
from emerge.core.logging.logger import get_logger
from emerge.modules.insight import InsightService
from emerge.modules.notifications import (
    InMemoryNotificationSink,
    LevelUpNotifier,
    NotificationSink,
)
from emerge.modules.progression import (
    ActivityDispatcher,
    InMemoryProgressionStore,
    ProgressionService,
    ProgressionStore,
)

if TYPE_CHECKING:
    from logging import Logger


class ServiceContainer:
    """
    Dependency container for the engine's services.

    Usage:
        container = ServiceContainer(
            config_manager, event_bus, logger,
            store=SqlProgressionStore(db),
            cache_backend=RedisCacheBackend.from_url(),
            notification_sink=sink,
        )
        await container.initialize()
        await container.dispatcher.handle(payload)
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        *,
        store: ProgressionStore,
        cache_backend: CacheBackend,
        notification_sink: NotificationSink,
        retry_policy: Optional[TransactionRetryPolicy] = None,
    ) -> None:
        self._config_manager = config_manager
        self._event_bus = event_bus
        self._logger = logger
        self._store = store
        self._cache_backend = cache_backend
        self._notification_sink = notification_sink
        self._retry_policy = retry_policy

        self._progression: Optional[ProgressionService] = None
        self._insight: Optional[InsightService] = None
        self._dispatcher: Optional[ActivityDispatcher] = None
        self._notifier: Optional[LevelUpNotifier] = None

        self._initialized = False
        self._init_seconds: Optional[float] = None

    @classmethod
    def in_memory(
        cls,
        config_manager: Optional[ConfigManager] = None,
        *,
        retry_policy: Optional[TransactionRetryPolicy] = None,
    ) -> ServiceContainer:
        """Container over in-memory storage, cache and sink."""
        config_manager = config_manager or ConfigManager.from_defaults()
        return cls(
            config_manager,
            EventBus(config_manager),
            get_logger(__name__),
            store=InMemoryProgressionStore(),
            cache_backend=InMemoryCacheBackend(),
            notification_sink=InMemoryNotificationSink(),
            retry_policy=retry_policy,
        )

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def initialize(self) -> None:
        if self._initialized:
            self._logger.warning("ServiceContainer already initialized")
            return

        start = time.perf_counter()
        try:
            self._progression = ProgressionService(
                self._store,
                self._config_manager,
                self._event_bus,
                get_logger("emerge.modules.progression.service.ProgressionService"),
                retry_policy=self._retry_policy,
            )
            self._insight = InsightService(
                self._store,
                InsightCache(self._cache_backend, self._config_manager),
                self._config_manager,
                self._event_bus,
                get_logger("emerge.modules.insight.service.InsightService"),
            )
            self._dispatcher = ActivityDispatcher(self._progression)
            self._notifier = LevelUpNotifier(self._notification_sink)
            self._notifier.register(self._event_bus)
        except Exception as e:
            self._logger.critical(
                "Service container initialization failed",
                exc_info=True,
                extra={"error": str(e)},
            )
            raise

        self._init_seconds = time.perf_counter() - start
        self._initialized = True
        self._logger.info(
            "Service container initialized",
            extra={"total_time_seconds": round(self._init_seconds, 3)},
        )

    async def shutdown(self) -> None:
        if not self._initialized:
            return
        await self._event_bus.drain()
        self._event_bus.unsubscribe(
            "progression.leveled_up", LevelUpNotifier.LISTENER_ID
        )
        self._initialized = False
        self._logger.info("Service container shut down")

    def health_check(self) -> Dict[str, Any]:
        return {
            "initialized": self._initialized,
            "init_time_seconds": (
                round(self._init_seconds, 3) if self._init_seconds is not None else None
            ),
            "listeners": self._event_bus.get_listener_count(),
        }

    # ========================================================================
    # Services
    # ========================================================================

    def _require(self, service: Optional[Any]) -> Any:
        if not self._initialized or service is None:
            raise RuntimeError("ServiceContainer not initialized. Call initialize() first.")
        return service

    @property
    def progression(self) -> ProgressionService:
        return self._require(self._progression)

    @property
    def insight(self) -> InsightService:
        return self._require(self._insight)

    @property
    def dispatcher(self) -> ActivityDispatcher:
        return self._require(self._dispatcher)

    @property
    def store(self) -> ProgressionStore:
        return self._store

    @property
    def notification_sink(self) -> NotificationSink:
        return self._notification_sink
