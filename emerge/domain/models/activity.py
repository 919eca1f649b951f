"""
Activity event domain model.

Purpose
-------
Immutable facts describing something a user did in the app. Each activity
type is its own case class carrying only the fields that type can have, so
downstream code never inspects optional fields of an untyped payload.

Cases
-----
- HabitCompleted: habit_id, difficulty, attribute (all optional)
- ChallengeJoined, TribeJoined, ReflectionSaved: identity only
- UnknownActivity: any activity type the engine does not award XP for

Every case except UnknownActivity may carry an optional streak_day.

Payload parsing lives in `emerge.modules.progression.parser`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Optional, Union

from emerge.domain.models.base import validate_non_negative, validate_not_empty


class ActivityType(str, Enum):
    HABIT_COMPLETION = "habit_completion"
    JOINED_CHALLENGE = "joined_challenge"
    JOINED_TRIBE = "joined_tribe"
    REFLECTION_SAVED = "reflection_saved"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class Attribute(str, Enum):
    """Avatar stat categories a habit can train."""

    STRENGTH = "strength"
    INTELLECT = "intellect"
    VITALITY = "vitality"
    CREATIVITY = "creativity"
    FOCUS = "focus"
    SPIRIT = "spirit"


@dataclass(frozen=True)
class ActivityEvent:
    """Common identity of every activity case."""

    KIND: ClassVar[Optional[ActivityType]] = None

    user_id: str
    event_id: str

    def __post_init__(self) -> None:
        validate_not_empty(self.user_id, "user_id")
        validate_not_empty(self.event_id, "event_id")

    @property
    def activity_type(self) -> str:
        assert self.KIND is not None
        return self.KIND.value

    @property
    def is_known(self) -> bool:
        return self.KIND is not None


@dataclass(frozen=True)
class ScoredActivity(ActivityEvent):
    """An activity that earns XP. Any of them may report the current streak day."""

    streak_day: Optional[int] = None

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.streak_day is not None:
            validate_non_negative(self.streak_day, "streak_day")


@dataclass(frozen=True)
class HabitCompleted(ScoredActivity):
    KIND: ClassVar[Optional[ActivityType]] = ActivityType.HABIT_COMPLETION

    habit_id: Optional[str] = None
    difficulty: Optional[Difficulty] = None
    attribute: Optional[Attribute] = None


@dataclass(frozen=True)
class ChallengeJoined(ScoredActivity):
    KIND: ClassVar[Optional[ActivityType]] = ActivityType.JOINED_CHALLENGE


@dataclass(frozen=True)
class TribeJoined(ScoredActivity):
    KIND: ClassVar[Optional[ActivityType]] = ActivityType.JOINED_TRIBE


@dataclass(frozen=True)
class ReflectionSaved(ScoredActivity):
    KIND: ClassVar[Optional[ActivityType]] = ActivityType.REFLECTION_SAVED


@dataclass(frozen=True)
class UnknownActivity(ActivityEvent):
    """An activity type outside the XP table. Applying it is a no-op."""

    raw_type: str = ""

    @property
    def activity_type(self) -> str:
        return self.raw_type


KnownActivity = Union[HabitCompleted, ChallengeJoined, TribeJoined, ReflectionSaved]
