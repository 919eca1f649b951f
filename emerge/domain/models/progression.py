"""
Progression domain model.

Purpose
-------
The per-user progression record (XP, level, attribute XP, streak) and the
aggregate that owns every change to it.

Business Rules
--------------
- total_xp and every attribute XP value only grow
- level is always derived from total_xp, so it never decreases
- an event id is applied at most once; the most recent ids are kept in a
  bounded, insertion-ordered log
- streak mirrors the streak day reported by the latest activity that carried one
- a level increase emits `progression.leveled_up`

Design Notes
------------
ProgressionRecord is an immutable value object so snapshots read from a
store can be shared freely. UserProgression wraps one record plus its world
state and produces the next record; the level curve is injected so the
domain layer stays free of configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

from emerge.domain.models.activity import Attribute
from emerge.domain.models.base import (
    AggregateRoot,
    DomainValidationError,
    validate_non_negative,
    validate_not_empty,
    validate_positive,
)
from emerge.domain.models.world import WorldState

LEVELED_UP = "progression.leveled_up"
DEFAULT_RECENT_EVENT_CAPACITY = 100

LevelFn = Callable[[int], int]


@dataclass(frozen=True)
class ProgressionRecord:
    """
    Snapshot of a user's progression.

    Attributes
    ----------
    user_id : str
        Owner of the record
    total_xp : int
        Lifetime XP, never negative
    attribute_xp : Mapping[str, int]
        XP per attribute name; only attributed habit completions add here
    level : int
        Level derived from total_xp
    streak : int
        Latest reported streak day
    recent_event_ids : Tuple[str, ...]
        Most recently applied event ids, oldest first
    updated_at : Optional[datetime]
        Time of the last applied event (UTC); None until first write
    """

    user_id: str
    total_xp: int = 0
    attribute_xp: Mapping[str, int] = field(default_factory=dict)
    level: int = 1
    streak: int = 0
    recent_event_ids: Tuple[str, ...] = ()
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        validate_not_empty(self.user_id, "user_id")
        validate_non_negative(self.total_xp, "total_xp")
        validate_positive(self.level, "level")
        validate_non_negative(self.streak, "streak")
        for attribute, xp in self.attribute_xp.items():
            validate_non_negative(xp, f"attribute_xp.{attribute}")
        if len(set(self.recent_event_ids)) != len(self.recent_event_ids):
            raise DomainValidationError(
                "recent_event_ids must not contain duplicates",
                field="recent_event_ids",
            )

    @classmethod
    def new(cls, user_id: str) -> ProgressionRecord:
        return cls(user_id=user_id)

    def attribute_total(self, attribute: Union[Attribute, str]) -> int:
        return self.attribute_xp.get(getattr(attribute, "value", attribute), 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "total_xp": self.total_xp,
            "attribute_xp": dict(self.attribute_xp),
            "level": self.level,
            "streak": self.streak,
            "recent_event_ids": list(self.recent_event_ids),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ProgressionRecord:
        updated_at = data.get("updated_at")
        if isinstance(updated_at, str):
            updated_at = datetime.fromisoformat(updated_at)
        return cls(
            user_id=data["user_id"],
            total_xp=int(data.get("total_xp", 0)),
            attribute_xp={k: int(v) for k, v in (data.get("attribute_xp") or {}).items()},
            level=int(data.get("level", 1)),
            streak=int(data.get("streak", 0)),
            recent_event_ids=tuple(data.get("recent_event_ids") or ()),
            updated_at=updated_at,
        )


class UserProgression(AggregateRoot):
    """
    Aggregate root for one user's progression and world state.

    All mutation goes through `apply_gain` and `replace_world`; the current
    state is read back through `record` and `world`.
    """

    def __init__(
        self,
        record: ProgressionRecord,
        world: Optional[WorldState] = None,
        *,
        recent_capacity: int = DEFAULT_RECENT_EVENT_CAPACITY,
    ) -> None:
        super().__init__(record.user_id)
        validate_positive(recent_capacity, "recent_capacity")
        self._record = record
        self._world = world or WorldState.empty()
        self._recent_capacity = recent_capacity

    @classmethod
    def start(cls, user_id: str, **kwargs: Any) -> UserProgression:
        return cls(ProgressionRecord.new(user_id), **kwargs)

    @property
    def record(self) -> ProgressionRecord:
        return self._record

    @property
    def world(self) -> WorldState:
        return self._world

    def has_applied(self, event_id: str) -> bool:
        return event_id in self._record.recent_event_ids

    def apply_gain(
        self,
        event_id: str,
        xp: int,
        *,
        level_fn: LevelFn,
        attribute: Optional[Union[Attribute, str]] = None,
        streak_day: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> ProgressionRecord:
        """
        Add `xp` for `event_id` and return the new record.

        Raises:
            DomainValidationError: If xp is negative or event_id was already
                recorded in the recent log.
        """
        validate_non_negative(xp, "xp")
        if self.has_applied(event_id):
            raise DomainValidationError(
                f"event {event_id} already applied", field="event_id"
            )

        old = self._record
        total_xp = old.total_xp + xp

        attribute_xp = dict(old.attribute_xp)
        if attribute is not None:
            key = getattr(attribute, "value", attribute)
            attribute_xp[key] = attribute_xp.get(key, 0) + xp

        recent = (old.recent_event_ids + (event_id,))[-self._recent_capacity :]

        self._record = replace(
            old,
            total_xp=total_xp,
            attribute_xp=attribute_xp,
            level=level_fn(total_xp),
            streak=old.streak if streak_day is None else streak_day,
            recent_event_ids=recent,
            updated_at=now or datetime.now(timezone.utc),
        )

        if self._record.level > old.level:
            self.add_domain_event(
                LEVELED_UP,
                {
                    "user_id": self.id,
                    "old_level": old.level,
                    "new_level": self._record.level,
                },
            )
        return self._record

    def replace_world(self, world: WorldState) -> None:
        self._world = world
