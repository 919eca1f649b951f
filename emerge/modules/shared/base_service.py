"""
Base Service Foundation

Purpose
-------
Common base for the engine's services. Services hold business logic,
drive transactions through injected stores, and hand domain events to the
event bus.

Design Notes
------------
This base class provides:
- Structured logging with operation context
- Safe config access
- Event emission helper
- Argument validation raising `ValidationError`

What this class does NOT do:
- Manage database sessions (stores own those)
- Contain progression rules

Usage
-----
    class InsightService(BaseService):
        def __init__(self, store, cache, config_manager, event_bus, logger):
            super().__init__(config_manager, event_bus, logger)
            self._store = store
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from emerge.core.exceptions import ConfigurationError
from emerge.modules.shared.exceptions import ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from emerge.core.config.manager import ConfigManager
    from emerge.core.event.bus import EventBus


class BaseService:
    """
    Base class for domain services.

    Args:
        config_manager: Balance values and tunables
        event_bus: Bus for cross-module events
        logger: Structured logger instance
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        self._config = config_manager
        self._events = event_bus
        self.log = logger

    def get_config(
        self, key: str, default: Optional[Any] = None, required: bool = False
    ) -> Any:
        """
        Read a configuration value.

        Raises:
            ConfigurationError: If required=True and the key is missing
        """
        value = self._config.get(key, default)
        if required and value is None:
            raise ConfigurationError(
                key, f"Required configuration key '{key}' is missing"
            )
        return value

    async def emit_event(
        self,
        event_type: str,
        data: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self._events.publish(event_type, {**data, **(context or {})})

    def log_operation(self, operation: str, **context: Any) -> None:
        self.log.info(
            f"Service operation: {operation}",
            extra={"operation": operation, **context},
        )

    def log_error(
        self,
        operation: str,
        error: Exception,
        **context: Any,
    ) -> None:
        self.log.error(
            f"Service error during {operation}: {error}",
            extra={
                "operation": operation,
                "error_type": type(error).__name__,
                "error_message": str(error),
                **context,
            },
        )

    def validate_user_id(self, user_id: Any, name: str = "user_id") -> str:
        """
        Validate that a user id is a non-empty string.

        Raises:
            ValidationError: If the id is missing, blank or not a string
        """
        if not isinstance(user_id, str) or not user_id.strip():
            raise ValidationError(name, f"{name} must be a non-empty string")
        return user_id
