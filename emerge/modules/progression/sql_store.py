"""
SQL Progression Store

Purpose
-------
PostgreSQL-backed ProgressionStore built on DatabaseService.

Concurrency
-----------
- Existing rows are read with SELECT ... FOR UPDATE, so same-user
  transactions serialize on the row lock.
- A user's first write inserts the row; two first writes racing on the
  primary key surface as IntegrityError on flush, translated to
  TransactionConflictError so the retry policy re-reads the new row.
- The processed-activity marker shares the transaction, so a redelivered
  event that slipped past the recent-id log is still caught.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from emerge.core.database.service import DatabaseService
from emerge.core.exceptions import TransactionConflictError
from emerge.core.logging.logger import get_logger
from emerge.database.models import ProcessedActivityRow, UserProgressionRow
from emerge.domain.models.progression import ProgressionRecord
from emerge.domain.models.world import WorldState
from emerge.modules.progression.store import (
    ProcessedActivity,
    ProgressionSnapshot,
    StagedWrite,
)

logger = get_logger(__name__)


def _to_snapshot(row: UserProgressionRow) -> ProgressionSnapshot:
    record = ProgressionRecord(
        user_id=row.user_id,
        total_xp=row.total_xp,
        attribute_xp=dict(row.attribute_xp or {}),
        level=row.level,
        streak=row.streak,
        recent_event_ids=tuple(row.recent_event_ids or ()),
        updated_at=row.updated_at,
    )
    return ProgressionSnapshot(
        record=record,
        world=WorldState.from_dict(row.world_state),
        version=row.version,
    )


class _SqlTransaction:
    def __init__(
        self,
        session: AsyncSession,
        snapshot: ProgressionSnapshot,
        row: Optional[UserProgressionRow],
    ) -> None:
        self._session = session
        self._snapshot = snapshot
        self.row = row
        self.staged: Optional[StagedWrite] = None

    @property
    def snapshot(self) -> ProgressionSnapshot:
        return self._snapshot

    async def is_processed(self, event_id: str) -> bool:
        marker = await self._session.get(
            ProcessedActivityRow, (self._snapshot.record.user_id, event_id)
        )
        return marker is not None

    def stage(
        self,
        record: ProgressionRecord,
        world: WorldState,
        processed: ProcessedActivity,
    ) -> None:
        self.staged = StagedWrite(record=record, world=world, processed=processed)


class SqlProgressionStore:
    """ProgressionStore over the `user_progression` table."""

    def __init__(self, db: DatabaseService) -> None:
        self._db = db

    async def get(self, user_id: str) -> Optional[ProgressionSnapshot]:
        async with self._db.get_session() as session:
            row = await session.get(UserProgressionRow, user_id)
            return _to_snapshot(row) if row is not None else None

    @asynccontextmanager
    async def transaction(self, user_id: str) -> AsyncIterator[_SqlTransaction]:
        async with self._db.get_transaction() as session:
            row = await self._db.get_locked_entity(
                session, UserProgressionRow, user_id
            )
            snapshot = (
                _to_snapshot(row)
                if row is not None
                else ProgressionSnapshot.initial(user_id)
            )

            tx = _SqlTransaction(session, snapshot, row)
            yield tx

            if tx.staged is not None:
                await self._write(session, user_id, tx)

    async def _write(
        self, session: AsyncSession, user_id: str, tx: _SqlTransaction
    ) -> None:
        staged = tx.staged
        assert staged is not None
        record = staged.record

        row = tx.row
        if row is None:
            row = UserProgressionRow(user_id=user_id, version=1)
            session.add(row)
        else:
            row.version = row.version + 1

        row.total_xp = record.total_xp
        row.level = record.level
        row.streak = record.streak
        row.attribute_xp = dict(record.attribute_xp)
        row.recent_event_ids = list(record.recent_event_ids)
        row.world_state = staged.world.to_dict()
        if record.updated_at is not None:
            row.updated_at = record.updated_at

        processed = staged.processed
        try:
            # parent row first; the marker references it
            await session.flush()
            session.add(
                ProcessedActivityRow(
                    user_id=processed.user_id,
                    event_id=processed.event_id,
                    activity_type=processed.activity_type,
                    xp_earned=processed.xp_earned,
                    applied_at=processed.applied_at,
                )
            )
            await session.flush()
        except IntegrityError as exc:
            logger.info(
                "Concurrent progression write detected",
                extra={"user_id": user_id, "event_id": processed.event_id},
            )
            raise TransactionConflictError(
                user_id,
                expected_version=tx.snapshot.version,
            ) from exc
