"""
Domain models.

Exports:
- Activity cases: ActivityEvent, HabitCompleted, ChallengeJoined,
  TribeJoined, ReflectionSaved, UnknownActivity, ScoredActivity
- Enums: ActivityType, Difficulty, Attribute
- Progression: ProgressionRecord, UserProgression
- World: WorldState, ZoneState, ZoneRules, update_zone
"""

from .activity import (
    ActivityEvent,
    ActivityType,
    Attribute,
    ChallengeJoined,
    Difficulty,
    HabitCompleted,
    KnownActivity,
    ReflectionSaved,
    ScoredActivity,
    TribeJoined,
    UnknownActivity,
)
from .base import AggregateRoot, DomainEvent, DomainValidationError, Entity
from .progression import LEVELED_UP, ProgressionRecord, UserProgression
from .world import (
    DEFAULT_ZONE_RULES,
    WorldState,
    ZoneRules,
    ZoneState,
    compute_entropy,
    update_zone,
)

__all__ = [
    "ActivityEvent",
    "ActivityType",
    "Attribute",
    "ChallengeJoined",
    "Difficulty",
    "HabitCompleted",
    "KnownActivity",
    "ReflectionSaved",
    "ScoredActivity",
    "TribeJoined",
    "UnknownActivity",
    "AggregateRoot",
    "DomainEvent",
    "DomainValidationError",
    "Entity",
    "LEVELED_UP",
    "ProgressionRecord",
    "UserProgression",
    "DEFAULT_ZONE_RULES",
    "WorldState",
    "ZoneRules",
    "ZoneState",
    "compute_entropy",
    "update_zone",
]
