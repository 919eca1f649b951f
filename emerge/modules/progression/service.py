"""
Progression Service

Purpose
-------
Apply activity events to a user's progression record: award XP, derive the
level, track the streak, advance the world zones, and report level-ups.

Responsibilities
----------------
- Compute the XP gain for an activity from the configured XP table
- Run one atomic read-modify-write per event through the ProgressionStore
- Skip events that were already applied (recent-id log or durable marker)
- Treat activity types outside the XP table as no-ops
- Retry transient store failures, then surface a retryable
  ProgressionApplyError
- Return level-up domain events only once the write has committed

Non-Responsibilities
--------------------
- Payload parsing (parser.py)
- Delivering notifications (notifications module, via the event bus)

Design Notes
------------
- The XP gain depends only on the event, so it is computed once, outside
  the retried transaction.
- A failed zone update is logged and the XP write still commits; the world
  view is secondary to the record.
- Events are handed back in `ApplyResult.events`; `publish_events` sends them
  to the bus. Publication failures never undo a committed record.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from logging import Logger
from typing import Any, Callable, Optional, Sequence, Tuple

from emerge.core.config.manager import ConfigManager
from emerge.core.database.retry_policy import TransactionRetryPolicy
from emerge.core.event.bus import EventBus
from emerge.core.logging.logger import LogContext, get_logger
from emerge.domain.models.activity import ActivityEvent, HabitCompleted, ScoredActivity
from emerge.domain.models.base import DomainEvent
from emerge.domain.models.progression import (
    DEFAULT_RECENT_EVENT_CAPACITY,
    LEVELED_UP,
    ProgressionRecord,
    UserProgression,
)
from emerge.domain.models.world import (
    DEFAULT_ZONE,
    DEFAULT_ZONE_MAP,
    WorldState,
    ZoneRules,
    update_zone,
)
from emerge.modules.progression.store import (
    ProcessedActivity,
    ProgressionSnapshot,
    ProgressionStore,
)
from emerge.modules.shared.base_service import BaseService
from emerge.modules.shared.exceptions import MalformedEventError, ProgressionApplyError
from emerge.modules.shared.formulas import (
    DEFAULT_BASE_XP,
    DEFAULT_DIFFICULTY_MULTIPLIERS,
    DEFAULT_XP_PER_LEVEL,
    XpTable,
    compute_xp_gain,
    level_from_xp,
    xp_to_next_level,
)


@dataclass(frozen=True)
class ApplyResult:
    """
    Outcome of one `ProgressionService.apply` call.

    Attributes
    ----------
    record : ProgressionRecord
        Record after the call (unchanged for duplicates and unknown types)
    world : WorldState
        World state after the call
    events : Tuple[DomainEvent, ...]
        Committed domain events, in emission order
    xp_gained : int
        XP added by this call
    duplicate : bool
        True when the event had already been applied
    """

    record: ProgressionRecord
    world: WorldState
    events: Tuple[DomainEvent, ...] = ()
    xp_gained: int = 0
    duplicate: bool = False

    @property
    def leveled_up(self) -> bool:
        return any(event.event_name == LEVELED_UP for event in self.events)


class ProgressionService(BaseService):
    """
    Idempotent, transactional progression updates.

    Public API
    ----------
    - apply(user_id, event) -> ApplyResult
    - get_record(user_id) -> ProgressionSnapshot
    - publish_events(events) -> number of events published
    - xp_gain_for(event) -> int
    - xp_to_next_level(total_xp) -> int
    """

    def __init__(
        self,
        store: ProgressionStore,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Optional[Logger] = None,
        *,
        retry_policy: Optional[TransactionRetryPolicy] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        super().__init__(config_manager, event_bus, logger or get_logger(__name__))
        self._store = store
        self._retry = retry_policy or TransactionRetryPolicy.from_config()
        self._clock = clock

        self._xp_table = self._load_xp_table()
        self._zone_rules = self._load_zone_rules()
        self._xp_per_level = int(
            self.get_config("progression.level.xp_per_level", DEFAULT_XP_PER_LEVEL)
        )
        self._recent_capacity = int(
            self.get_config(
                "progression.idempotency.recent_event_capacity",
                DEFAULT_RECENT_EVENT_CAPACITY,
            )
        )

    # ========================================================================
    # CONFIGURATION
    # ========================================================================

    def _load_xp_table(self) -> XpTable:
        return XpTable(
            base=dict(self.get_config("progression.xp.base", DEFAULT_BASE_XP)),
            difficulty_multipliers=dict(
                self.get_config(
                    "progression.xp.difficulty_multipliers",
                    DEFAULT_DIFFICULTY_MULTIPLIERS,
                )
            ),
            streak_step_days=int(self.get_config("progression.xp.streak_step_days", 7)),
            streak_step_bonus=Decimal(
                str(self.get_config("progression.xp.streak_step_bonus", "0.1"))
            ),
            max_streak_bonus=Decimal(
                str(self.get_config("progression.xp.max_streak_bonus", "0.5"))
            ),
        )

    def _load_zone_rules(self) -> ZoneRules:
        return ZoneRules(
            zone_map=dict(self.get_config("world.zones", DEFAULT_ZONE_MAP)),
            default_zone=self.get_config("world.default_zone", DEFAULT_ZONE),
            health_step=float(self.get_config("world.health_step", 0.1)),
            milestones_per_level=int(self.get_config("world.milestones_per_level", 10)),
        )

    def _level_for(self, total_xp: int) -> int:
        return level_from_xp(total_xp, self._xp_per_level)

    # ========================================================================
    # QUERIES
    # ========================================================================

    def xp_gain_for(self, event: ActivityEvent) -> int:
        if not event.is_known:
            return 0
        difficulty = event.difficulty if isinstance(event, HabitCompleted) else None
        streak_day = event.streak_day if isinstance(event, ScoredActivity) else None
        return compute_xp_gain(
            event.activity_type, difficulty, streak_day, table=self._xp_table
        )

    def xp_to_next_level(self, total_xp: int) -> int:
        return xp_to_next_level(total_xp, self._xp_per_level)

    async def get_record(self, user_id: str) -> ProgressionSnapshot:
        """Current snapshot, or an unsaved default for an unknown user."""
        self.validate_user_id(user_id)
        snapshot = await self._store.get(user_id)
        return snapshot or ProgressionSnapshot.initial(user_id)

    # ========================================================================
    # APPLY
    # ========================================================================

    async def apply(self, user_id: str, event: ActivityEvent) -> ApplyResult:
        """
        Apply one activity event to `user_id`'s progression.

        Args:
            user_id: Owner of the record
            event: Parsed activity event for that user

        Returns:
            ApplyResult with the resulting record and committed events

        Raises:
            ValidationError: If user_id is blank
            MalformedEventError: If the event belongs to another user
            ProgressionApplyError: If the write could not be committed after
                retrying transient failures (retryable)
        """
        self.validate_user_id(user_id)
        if event.user_id != user_id:
            raise MalformedEventError(
                "event userId does not match the target user",
                field="userId",
                event_id=event.event_id,
            )

        async with LogContext(
            user_id=user_id,
            event_id=event.event_id,
            component="progression",
            operation="progression.apply",
        ):
            if not event.is_known:
                snapshot = await self.get_record(user_id)
                self.log.info(
                    "Ignoring activity type without XP",
                    extra={"activity_type": event.activity_type},
                )
                return ApplyResult(record=snapshot.record, world=snapshot.world)

            gain = self.xp_gain_for(event)
            attempts = 0

            async def attempt() -> ApplyResult:
                nonlocal attempts
                attempts += 1
                return await self._apply_once(user_id, event, gain)

            try:
                result = await self._retry.execute(
                    attempt,
                    operation_name="progression.apply",
                    context={"user_id": user_id, "event_id": event.event_id},
                )
            except Exception as exc:
                if not self._retry.is_retriable(exc):
                    raise
                self.log_error(
                    "apply", exc, user_id=user_id, event_id=event.event_id, attempts=attempts
                )
                raise ProgressionApplyError(
                    user_id, event.event_id, attempts, original_error=exc
                ) from exc

            if result.duplicate:
                self.log.info(
                    "Duplicate activity skipped",
                    extra={"activity_type": event.activity_type},
                )
            else:
                self.log_operation(
                    "apply",
                    activity_type=event.activity_type,
                    xp_gained=result.xp_gained,
                    total_xp=result.record.total_xp,
                    level=result.record.level,
                    attempts=attempts,
                )
            return result

    async def _apply_once(
        self, user_id: str, event: ActivityEvent, gain: int
    ) -> ApplyResult:
        async with self._store.transaction(user_id) as tx:
            snapshot = tx.snapshot
            progression = UserProgression(
                snapshot.record,
                snapshot.world,
                recent_capacity=self._recent_capacity,
            )

            if progression.has_applied(event.event_id) or await tx.is_processed(
                event.event_id
            ):
                return ApplyResult(
                    record=snapshot.record, world=snapshot.world, duplicate=True
                )

            attribute = event.attribute if isinstance(event, HabitCompleted) else None
            streak_day = event.streak_day if isinstance(event, ScoredActivity) else None
            now = self._clock()

            progression.apply_gain(
                event.event_id,
                gain,
                level_fn=self._level_for,
                attribute=attribute,
                streak_day=streak_day,
                now=now,
            )
            if attribute is not None:
                self._advance_world(progression, attribute)

            events = tuple(progression.clear_domain_events())
            tx.stage(
                progression.record,
                progression.world,
                ProcessedActivity(
                    user_id=user_id,
                    event_id=event.event_id,
                    activity_type=event.activity_type,
                    xp_earned=gain,
                    applied_at=now,
                ),
            )

        return ApplyResult(
            record=progression.record,
            world=progression.world,
            events=events,
            xp_gained=gain,
        )

    def _advance_world(self, progression: UserProgression, attribute: Any) -> None:
        try:
            world = update_zone(progression.world, attribute, rules=self._zone_rules)
        except Exception as exc:
            self.log_error(
                "zone_update",
                exc,
                user_id=progression.id,
                attribute=getattr(attribute, "value", attribute),
            )
            return
        progression.replace_world(world)

    # ========================================================================
    # EVENTS
    # ========================================================================

    async def publish_events(self, events: Sequence[DomainEvent]) -> int:
        """
        Publish committed domain events to the bus.

        Each event is published independently; a failure is logged and the
        remaining events still go out. Returns how many were published.
        """
        published = 0
        for event in events:
            try:
                await self.emit_event(event.event_name, event.payload)
            except Exception as exc:
                self.log_error(
                    "publish_event",
                    exc,
                    event_name=event.event_name,
                    user_id=event.payload.get("user_id"),
                )
                continue
            published += 1
        return published
