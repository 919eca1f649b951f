"""
Activity payload parsing.

Turns the raw mapping written by the client (camelCase keys) into one of
the closed ActivityEvent cases. This is the only place raw payloads are
inspected; everything downstream works with typed cases.

Accepted keys
-------------
- userId / user_id                  (required, non-empty string)
- eventId / activityId / event_id   (required, non-empty string)
- activityType / type               (required, non-empty string)
- streakDay / streak_day            (any known type, non-negative int)
- habitId, difficulty, attribute    (habit_completion only)

Keys that do not belong to the parsed case are ignored.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence, Type, TypeVar

from emerge.domain.models.activity import (
    ActivityEvent,
    ActivityType,
    Attribute,
    ChallengeJoined,
    Difficulty,
    HabitCompleted,
    ReflectionSaved,
    TribeJoined,
    UnknownActivity,
)
from emerge.modules.shared.exceptions import MalformedEventError

E = TypeVar("E", Difficulty, Attribute)

USER_ID_KEYS = ("userId", "user_id")
EVENT_ID_KEYS = ("eventId", "activityId", "event_id")
TYPE_KEYS = ("activityType", "type")

_SIMPLE_CASES = {
    ActivityType.JOINED_CHALLENGE: ChallengeJoined,
    ActivityType.JOINED_TRIBE: TribeJoined,
    ActivityType.REFLECTION_SAVED: ReflectionSaved,
}


def _first(payload: Mapping[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        if payload.get(key) is not None:
            return payload[key]
    return None


def _require_str(
    payload: Mapping[str, Any],
    keys: Sequence[str],
    event_id: Optional[str] = None,
) -> str:
    value = _first(payload, keys)
    if value is None:
        raise MalformedEventError(f"missing {keys[0]}", field=keys[0], event_id=event_id)
    if not isinstance(value, str) or not value.strip():
        raise MalformedEventError(
            f"{keys[0]} must be a non-empty string", field=keys[0], event_id=event_id
        )
    return value


def _optional_enum(
    payload: Mapping[str, Any], key: str, enum_cls: Type[E], event_id: str
) -> Optional[E]:
    raw = payload.get(key)
    if raw is None:
        return None
    try:
        return enum_cls(raw)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise MalformedEventError(
            f"{key} must be one of [{allowed}], got {raw!r}",
            field=key,
            event_id=event_id,
        ) from None


def _optional_streak(payload: Mapping[str, Any], event_id: str) -> Optional[int]:
    raw = payload.get("streakDay", payload.get("streak_day"))
    if raw is None:
        return None
    # bool is an int subclass
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise MalformedEventError(
            f"streakDay must be an integer, got {raw!r}",
            field="streakDay",
            event_id=event_id,
        )
    if raw < 0:
        raise MalformedEventError(
            f"streakDay must be non-negative, got {raw}",
            field="streakDay",
            event_id=event_id,
        )
    return raw


def parse_activity_event(payload: Any) -> ActivityEvent:
    """
    Parse a raw activity payload.

    Args:
        payload: Mapping as delivered by the dispatcher

    Returns:
        The matching ActivityEvent case; UnknownActivity for activity types
        outside the XP table

    Raises:
        MalformedEventError: Missing or invalid identifiers, enum values or
            streak day

    Example:
        >>> parse_activity_event(
        ...     {"userId": "u1", "eventId": "e1", "activityType": "joined_tribe"}
        ... )
        TribeJoined(user_id='u1', event_id='e1', streak_day=None)
    """
    if not isinstance(payload, Mapping):
        raise MalformedEventError(
            f"payload must be a mapping, got {type(payload).__name__}"
        )

    raw_event_id = _first(payload, EVENT_ID_KEYS)
    hint = raw_event_id if isinstance(raw_event_id, str) else None

    event_id = _require_str(payload, EVENT_ID_KEYS, hint)
    user_id = _require_str(payload, USER_ID_KEYS, event_id)
    raw_type = _require_str(payload, TYPE_KEYS, event_id)

    try:
        activity_type = ActivityType(raw_type)
    except ValueError:
        return UnknownActivity(user_id=user_id, event_id=event_id, raw_type=raw_type)

    streak_day = _optional_streak(payload, event_id)

    if activity_type is ActivityType.HABIT_COMPLETION:
        habit_id = payload.get("habitId", payload.get("habit_id"))
        if habit_id is not None and not isinstance(habit_id, str):
            raise MalformedEventError(
                "habitId must be a string", field="habitId", event_id=event_id
            )
        return HabitCompleted(
            user_id=user_id,
            event_id=event_id,
            habit_id=habit_id,
            difficulty=_optional_enum(payload, "difficulty", Difficulty, event_id),
            attribute=_optional_enum(payload, "attribute", Attribute, event_id),
            streak_day=streak_day,
        )

    return _SIMPLE_CASES[activity_type](
        user_id=user_id, event_id=event_id, streak_day=streak_day
    )
