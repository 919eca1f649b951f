"""
Emerge Progression Formulas

Purpose
-------
Pure calculation functions for progression: XP awarded per activity,
streak bonus, and the level curve.

Design Notes
------------
- Pure functions only: no config access, no I/O. Services read balance
  values from ConfigManager and pass them in through `XpTable` and
  `xp_per_level`.
- XP arithmetic runs in `Decimal` so products like 10 * 3 * 1.2 land on
  exactly 36 before rounding.
- Rounding is half away from zero (`ROUND_HALF_UP` in decimal terms).

Usage
-----
    from emerge.modules.shared.formulas import compute_xp_gain, level_from_xp

    gain = compute_xp_gain("habit_completion", "hard", streak_day=14)  # 36
    level = level_from_xp(256)  # 3
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping, Optional, Union

DEFAULT_BASE_XP = {
    "habit_completion": 10,
    "joined_challenge": 25,
    "joined_tribe": 50,
    "reflection_saved": 15,
}
DEFAULT_DIFFICULTY_MULTIPLIERS = {"easy": 1, "medium": 2, "hard": 3}
DEFAULT_XP_PER_LEVEL = 100

HABIT_COMPLETION = "habit_completion"

Number = Union[int, float, Decimal]


def _to_decimal(value: Number) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _key(value: Any) -> Any:
    # str-valued enums hash by member, not by value
    return getattr(value, "value", value)


@dataclass(frozen=True)
class XpTable:
    """XP balance values. Defaults match `progression.yaml`."""

    base: Mapping[str, int] = field(default_factory=lambda: dict(DEFAULT_BASE_XP))
    difficulty_multipliers: Mapping[str, Number] = field(
        default_factory=lambda: dict(DEFAULT_DIFFICULTY_MULTIPLIERS)
    )
    streak_step_days: int = 7
    streak_step_bonus: Number = Decimal("0.1")
    max_streak_bonus: Number = Decimal("0.5")

    def __post_init__(self) -> None:
        if self.streak_step_days <= 0:
            raise ValueError(
                f"streak_step_days must be positive, got {self.streak_step_days}"
            )
        if any(xp < 0 for xp in self.base.values()):
            raise ValueError("base XP values must be non-negative")
        if any(m < 0 for m in self.difficulty_multipliers.values()):
            raise ValueError("difficulty multipliers must be non-negative")


DEFAULT_XP_TABLE = XpTable()


def round_half_away_from_zero(value: Number) -> int:
    """
    Round to the nearest integer, ties away from zero.

    Example:
        >>> round_half_away_from_zero(2.5)
        3
        >>> round_half_away_from_zero(-2.5)
        -3
    """
    return int(_to_decimal(value).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def streak_bonus(streak_day: int, table: XpTable = DEFAULT_XP_TABLE) -> Decimal:
    """
    Fractional XP bonus for a streak: one step per full week, capped.

    Example:
        >>> streak_bonus(14)
        Decimal('0.2')
        >>> streak_bonus(70)
        Decimal('0.5')
    """
    if streak_day <= 0:
        return Decimal(0)
    steps = streak_day // table.streak_step_days
    bonus = steps * _to_decimal(table.streak_step_bonus)
    return min(bonus, _to_decimal(table.max_streak_bonus))


def compute_xp_gain(
    activity_type: Any,
    difficulty: Optional[Any] = None,
    streak_day: Optional[int] = None,
    *,
    table: XpTable = DEFAULT_XP_TABLE,
) -> int:
    """
    XP awarded for one activity.

    gain = round(base * difficulty_multiplier * (1 + streak_bonus))

    The difficulty multiplier only applies to habit completions and defaults
    to 1 when absent. Unknown activity types earn 0.

    Args:
        activity_type: Activity type (enum or raw string)
        difficulty: Habit difficulty (enum or raw string), optional
        streak_day: Current streak day, optional
        table: XP balance values

    Returns:
        Non-negative XP gain

    Example:
        >>> compute_xp_gain("habit_completion", "medium")
        20
        >>> compute_xp_gain("habit_completion", "hard", streak_day=14)
        36
        >>> compute_xp_gain("unfollowed_tribe")
        0
    """
    type_key = _key(activity_type)
    base = table.base.get(type_key, 0)
    if base <= 0:
        return 0

    multiplier: Number = 1
    if type_key == HABIT_COMPLETION and difficulty is not None:
        multiplier = table.difficulty_multipliers.get(_key(difficulty), 1)

    bonus = streak_bonus(streak_day, table) if streak_day is not None else Decimal(0)
    gain = _to_decimal(base) * _to_decimal(multiplier) * (1 + bonus)
    return max(0, round_half_away_from_zero(gain))


def level_from_xp(total_xp: int, xp_per_level: int = DEFAULT_XP_PER_LEVEL) -> int:
    """
    Level for a lifetime XP total: floor(total_xp / xp_per_level) + 1.

    Example:
        >>> level_from_xp(0)
        1
        >>> level_from_xp(256)
        3
    """
    if total_xp < 0:
        raise ValueError(f"total_xp must be non-negative, got {total_xp}")
    if xp_per_level <= 0:
        raise ValueError(f"xp_per_level must be positive, got {xp_per_level}")
    return total_xp // xp_per_level + 1


def xp_for_level(level: int, xp_per_level: int = DEFAULT_XP_PER_LEVEL) -> int:
    """
    Lifetime XP needed to reach `level`.

    Example:
        >>> xp_for_level(1)
        0
        >>> xp_for_level(3)
        200
    """
    if level < 1:
        raise ValueError(f"level must be >= 1, got {level}")
    return (level - 1) * xp_per_level


def xp_to_next_level(total_xp: int, xp_per_level: int = DEFAULT_XP_PER_LEVEL) -> int:
    """
    XP still missing before the next level.

    Example:
        >>> xp_to_next_level(56)
        44
        >>> xp_to_next_level(100)
        100
    """
    next_level = level_from_xp(total_xp, xp_per_level) + 1
    return xp_for_level(next_level, xp_per_level) - total_xp
