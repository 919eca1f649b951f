"""
Progression module.

Exports:
- ProgressionService, ApplyResult
- ActivityDispatcher
- parse_activity_event
- ProgressionStore protocol and its in-memory and SQL implementations
"""

from .dispatcher import ActivityDispatcher
from .parser import parse_activity_event
from .service import ApplyResult, ProgressionService
from .sql_store import SqlProgressionStore
from .store import (
    InMemoryProgressionStore,
    ProcessedActivity,
    ProgressionSnapshot,
    ProgressionStore,
    ProgressionTransaction,
)

__all__ = [
    "ActivityDispatcher",
    "ApplyResult",
    "InMemoryProgressionStore",
    "ProcessedActivity",
    "ProgressionService",
    "ProgressionSnapshot",
    "ProgressionStore",
    "ProgressionTransaction",
    "SqlProgressionStore",
    "parse_activity_event",
]
