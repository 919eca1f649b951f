"""
Activity Dispatcher

Purpose
-------
Entry point for raw activity writes delivered at least once by the host
platform. Parses the payload, applies it, then publishes the committed
domain events.

Failure Handling
----------------
- Malformed payloads are logged and dropped (returns None); redelivery
  could never succeed.
- ProgressionApplyError and unexpected errors are logged and propagate so
  the host redelivers the event.
- Event publication happens after the commit and never raises.
"""

from __future__ import annotations

from typing import Any, Optional

from emerge.core.logging.logger import LogContext, get_logger
from emerge.modules.progression.parser import parse_activity_event
from emerge.modules.progression.service import ApplyResult, ProgressionService
from emerge.modules.shared.exceptions import (
    MalformedEventError,
    is_transient_error,
    should_alert,
)

logger = get_logger(__name__)


class ActivityDispatcher:
    """Adapter from raw payloads to ProgressionService.apply."""

    def __init__(self, progression: ProgressionService) -> None:
        self._progression = progression
        self.dropped = 0

    async def handle(self, payload: Any) -> Optional[ApplyResult]:
        try:
            event = parse_activity_event(payload)
        except MalformedEventError as exc:
            self.dropped += 1
            logger.warning(
                "Dropping malformed activity event",
                extra={
                    "error_code": exc.error_code,
                    "reason": exc.reason,
                    "field": exc.field,
                    "event_id": exc.event_id,
                },
            )
            return None

        async with LogContext(
            user_id=event.user_id,
            event_id=event.event_id,
            component="dispatcher",
        ):
            try:
                result = await self._progression.apply(event.user_id, event)
            except MalformedEventError as exc:
                self.dropped += 1
                logger.warning(
                    "Dropping activity event rejected by progression",
                    extra={"error_code": exc.error_code, "reason": exc.reason},
                )
                return None
            except Exception as exc:
                log = logger.error if should_alert(exc) else logger.warning
                log(
                    "Activity event not applied, leaving for redelivery",
                    extra={
                        "error_type": type(exc).__name__,
                        "retryable": is_transient_error(exc),
                    },
                    exc_info=should_alert(exc),
                )
                raise

            if result.events:
                await self._progression.publish_events(result.events)
            return result
