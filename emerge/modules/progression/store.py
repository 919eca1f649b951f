"""
Progression Store

Purpose
-------
Persistence boundary for progression records. The service performs one
read-modify-write per activity through `ProgressionStore.transaction`; the
store decides how same-user transactions are serialized.

Contract
--------
- `transaction(user_id)` is an async context manager yielding a
  `ProgressionTransaction` whose `snapshot` is the current record and world
  (defaults for a new user, version 0).
- `stage(record, world, processed)` marks what to write. Leaving the block
  normally commits the staged write atomically; leaving it with an
  exception, or without staging anything, writes nothing.
- A commit that lost a race raises `TransactionConflictError`, which the
  retry policy treats as transient.
- `get(user_id)` is a read-only snapshot, or None for an unknown user.

Implementations
---------------
- `InMemoryProgressionStore` (here): optimistic version check, yields to
  the event loop between read and commit so concurrent tasks interleave.
- `SqlProgressionStore` (sql_store.py): row lock plus version column.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import (
    AsyncContextManager,
    AsyncIterator,
    Dict,
    List,
    Optional,
    Protocol,
    Tuple,
)

from emerge.core.exceptions import TransactionConflictError
from emerge.core.logging.logger import get_logger
from emerge.domain.models.progression import ProgressionRecord
from emerge.domain.models.world import WorldState

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProcessedActivity:
    """Durable marker that an activity event was applied."""

    user_id: str
    event_id: str
    activity_type: str
    xp_earned: int
    applied_at: datetime


@dataclass(frozen=True)
class ProgressionSnapshot:
    record: ProgressionRecord
    world: WorldState = field(default_factory=WorldState.empty)
    version: int = 0

    @property
    def exists(self) -> bool:
        return self.version > 0

    @classmethod
    def initial(cls, user_id: str) -> ProgressionSnapshot:
        return cls(record=ProgressionRecord.new(user_id))


class ProgressionTransaction(Protocol):
    @property
    def snapshot(self) -> ProgressionSnapshot: ...

    async def is_processed(self, event_id: str) -> bool: ...

    def stage(
        self,
        record: ProgressionRecord,
        world: WorldState,
        processed: ProcessedActivity,
    ) -> None: ...


class ProgressionStore(Protocol):
    def transaction(self, user_id: str) -> AsyncContextManager[ProgressionTransaction]: ...

    async def get(self, user_id: str) -> Optional[ProgressionSnapshot]: ...


# ============================================================================
# In-memory implementation
# ============================================================================


@dataclass
class StagedWrite:
    record: ProgressionRecord
    world: WorldState
    processed: ProcessedActivity


class _InMemoryTransaction:
    def __init__(self, store: InMemoryProgressionStore, snapshot: ProgressionSnapshot):
        self._store = store
        self._snapshot = snapshot
        self.staged: Optional[StagedWrite] = None

    @property
    def snapshot(self) -> ProgressionSnapshot:
        return self._snapshot

    async def is_processed(self, event_id: str) -> bool:
        return (self._snapshot.record.user_id, event_id) in self._store.processed

    def stage(
        self,
        record: ProgressionRecord,
        world: WorldState,
        processed: ProcessedActivity,
    ) -> None:
        self.staged = StagedWrite(record=record, world=world, processed=processed)


class InMemoryProgressionStore:
    """
    Dict-backed store for tests and local runs.

    Commits check that the row version is unchanged since the transaction
    read it; a mismatch raises TransactionConflictError. `fail_next_commit`
    queues an exception to raise instead of committing.
    """

    def __init__(self) -> None:
        self._rows: Dict[str, ProgressionSnapshot] = {}
        self.processed: Dict[Tuple[str, str], ProcessedActivity] = {}
        self.commit_count = 0
        self.conflict_count = 0
        self._injected_failures: List[Exception] = []

    def fail_next_commit(self, error: Exception, times: int = 1) -> None:
        self._injected_failures.extend([error] * times)

    def seed(self, record: ProgressionRecord, world: Optional[WorldState] = None) -> None:
        current = self._rows.get(record.user_id)
        self._rows[record.user_id] = ProgressionSnapshot(
            record=record,
            world=world or WorldState.empty(),
            version=(current.version if current else 0) + 1,
        )

    async def get(self, user_id: str) -> Optional[ProgressionSnapshot]:
        return self._rows.get(user_id)

    @asynccontextmanager
    async def transaction(self, user_id: str) -> AsyncIterator[_InMemoryTransaction]:
        snapshot = self._rows.get(user_id) or ProgressionSnapshot.initial(user_id)
        tx = _InMemoryTransaction(self, snapshot)
        yield tx

        if tx.staged is None:
            return

        await asyncio.sleep(0)
        self._commit(user_id, snapshot.version, tx.staged)

    def _commit(self, user_id: str, expected_version: int, staged: StagedWrite) -> None:
        if self._injected_failures:
            raise self._injected_failures.pop(0)

        current = self._rows.get(user_id)
        actual_version = current.version if current else 0
        if actual_version != expected_version:
            self.conflict_count += 1
            raise TransactionConflictError(
                user_id,
                expected_version=expected_version,
                actual_version=actual_version,
            )

        self._rows[user_id] = ProgressionSnapshot(
            record=staged.record,
            world=staged.world,
            version=expected_version + 1,
        )
        key = (user_id, staged.processed.event_id)
        self.processed[key] = staged.processed
        self.commit_count += 1
        logger.debug(
            "In-memory progression commit",
            extra={"user_id": user_id, "version": expected_version + 1},
        )
