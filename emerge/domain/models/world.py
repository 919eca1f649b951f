"""
World state domain model.

Purpose
-------
Per-user gamified view derived from habit completions: a set of themed
zones, each with its own level, health and milestone counter, plus a global
entropy scalar that rises as zones lose health.

Business Rules
--------------
- Each attribute maps to one zone; unmapped attributes land in the default
  zone ("park").
- A missing zone starts at level 1, full health, no milestones.
- A completion heals the zone by one step (capped at 1.0) and adds a
  milestone; reaching `level * milestones_per_level` milestones levels the
  zone up and resets the counter.
- entropy = max(0, 1 - mean(zone health)), 0.0 when there are no zones.

`update_zone` is pure: it returns a new WorldState and never mutates input.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

from emerge.domain.models.activity import Attribute
from emerge.domain.models.base import (
    DomainValidationError,
    validate_non_negative,
    validate_positive,
    validate_range,
)

DEFAULT_ZONE_MAP: Dict[str, str] = {
    "strength": "strength_training",
    "intellect": "library",
    "vitality": "park",
    "creativity": "studio",
    "focus": "shrine",
}
DEFAULT_ZONE = "park"

# Float noise from repeated 0.1 steps is trimmed at this precision.
_PRECISION = 6


@dataclass(frozen=True)
class ZoneRules:
    """Balance knobs for zone progression."""

    zone_map: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_ZONE_MAP))
    default_zone: str = DEFAULT_ZONE
    health_step: float = 0.1
    milestones_per_level: int = 10

    def __post_init__(self) -> None:
        validate_range(self.health_step, 0.0, 1.0, "health_step")
        validate_positive(self.milestones_per_level, "milestones_per_level")

    def zone_for(self, attribute: Union[Attribute, str]) -> str:
        key = attribute.value if isinstance(attribute, Attribute) else str(attribute)
        return self.zone_map.get(key, self.default_zone)


DEFAULT_ZONE_RULES = ZoneRules()


@dataclass(frozen=True)
class ZoneState:
    level: int = 1
    health: float = 1.0
    milestone: int = 0

    def __post_init__(self) -> None:
        validate_positive(self.level, "level")
        validate_range(self.health, 0.0, 1.0, "health")
        validate_non_negative(self.milestone, "milestone")

    def to_dict(self) -> Dict[str, Any]:
        return {"level": self.level, "health": self.health, "milestone": self.milestone}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ZoneState:
        return cls(
            level=int(data.get("level", 1)),
            health=float(data.get("health", 1.0)),
            milestone=int(data.get("milestone", 0)),
        )


@dataclass(frozen=True)
class WorldState:
    zones: Mapping[str, ZoneState] = field(default_factory=dict)
    entropy: float = 0.0

    def __post_init__(self) -> None:
        validate_range(self.entropy, 0.0, 1.0, "entropy")
        expected = compute_entropy(self.zones)
        if abs(self.entropy - expected) > 10 ** -_PRECISION:
            raise DomainValidationError(
                f"entropy {self.entropy} does not match zone health ({expected})",
                field="entropy",
            )

    @classmethod
    def empty(cls) -> WorldState:
        return cls()

    def zone(self, zone_id: str) -> Optional[ZoneState]:
        return self.zones.get(zone_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "zones": {zone_id: zone.to_dict() for zone_id, zone in self.zones.items()},
            "entropy": self.entropy,
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> WorldState:
        if not data:
            return cls.empty()
        zones = {
            zone_id: ZoneState.from_dict(zone)
            for zone_id, zone in (data.get("zones") or {}).items()
        }
        return cls(zones=zones, entropy=compute_entropy(zones))


def compute_entropy(zones: Mapping[str, ZoneState]) -> float:
    if not zones:
        return 0.0
    average = sum(zone.health for zone in zones.values()) / len(zones)
    return round(max(0.0, 1.0 - average), _PRECISION)


def update_zone(
    world: WorldState,
    attribute: Union[Attribute, str],
    completed: bool = True,
    *,
    rules: ZoneRules = DEFAULT_ZONE_RULES,
) -> WorldState:
    """
    Apply one habit outcome to the zone trained by `attribute`.

    Args:
        world: Current world state
        attribute: Attribute the habit trains
        completed: Whether the habit was completed. A miss leaves the zone
            values unchanged and only materializes the zone.
        rules: Zone table and step sizes

    Returns:
        New WorldState with the zone updated and entropy recomputed

    Example:
        >>> world = update_zone(WorldState.empty(), Attribute.FOCUS)
        >>> world.zones["shrine"]
        ZoneState(level=1, health=1.0, milestone=1)
    """
    zone_id = rules.zone_for(attribute)
    zone = world.zones.get(zone_id) or ZoneState()

    if completed:
        health = round(min(zone.health + rules.health_step, 1.0), _PRECISION)
        milestone = zone.milestone + 1
        level = zone.level
        if milestone >= level * rules.milestones_per_level:
            level += 1
            milestone = 0
        zone = ZoneState(level=level, health=health, milestone=milestone)

    zones = {**world.zones, zone_id: zone}
    return WorldState(zones=zones, entropy=compute_entropy(zones))
