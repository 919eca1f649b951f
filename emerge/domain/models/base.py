"""
Domain model building blocks.

Progression rules live on plain Python objects, apart from the SQLAlchemy
rows that persist them. An aggregate mutates itself through business
methods and records what happened as `DomainEvent`s; the service drains
those events once the surrounding transaction has committed.

Value objects elsewhere in this package are frozen dataclasses that check
their invariants in `__post_init__` with the validators below.

>>> class Habit(AggregateRoot):
...     def complete(self) -> None:
...         self.add_domain_event("habit.completed", {"habit_id": self.id})
>>> habit = Habit("h1")
>>> habit.complete()
>>> [e.event_name for e in habit.clear_domain_events()]
['habit.completed']
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DomainEvent:
    """Something that happened to an aggregate, e.g. "progression.leveled_up"."""

    event_name: str
    payload: Dict[str, Any]
    occurred_at: datetime = field(default_factory=_utcnow)


class Entity:
    """Identity-based object. Equal when the concrete type and id match."""

    def __init__(self, entity_id: str) -> None:
        self._id = entity_id
        self._pending: List[DomainEvent] = []

    @property
    def id(self) -> str:
        return self._id

    def _identity(self) -> Tuple[str, str]:
        return type(self).__name__, self._id

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Entity) and self._identity() == other._identity()

    def __hash__(self) -> int:
        return hash(self._identity())

    def add_domain_event(self, event_name: str, payload: Dict[str, Any]) -> None:
        self._pending.append(DomainEvent(event_name, payload))

    def get_pending_events(self) -> List[DomainEvent]:
        return list(self._pending)

    def clear_domain_events(self) -> List[DomainEvent]:
        """Hand the recorded events to the caller and start a fresh list."""
        drained, self._pending = self._pending, []
        return drained


class AggregateRoot(Entity):
    """Consistency boundary; outside code changes the aggregate only through it."""


# ============================================================================
# Invariant checks
# ============================================================================


class DomainValidationError(Exception):
    """A domain object was asked to hold a value its rules forbid."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


def validate_positive(value: int, field_name: str) -> None:
    if value <= 0:
        raise DomainValidationError(f"{field_name} must be > 0 (got {value})", field_name)


def validate_non_negative(value: float, field_name: str) -> None:
    if value < 0:
        raise DomainValidationError(f"{field_name} must be >= 0 (got {value})", field_name)


def validate_range(value: float, min_val: float, max_val: float, field_name: str) -> None:
    if value < min_val or value > max_val:
        raise DomainValidationError(
            f"{field_name} must lie in [{min_val}, {max_val}] (got {value})", field_name
        )


def validate_not_empty(value: str, field_name: str) -> None:
    if not value or not value.strip():
        raise DomainValidationError(f"{field_name} must not be blank", field_name)
