"""
Integration tests for SqlProgressionStore against PostgreSQL.

Covers row creation, version bumps, processed markers, world persistence
and concurrent same-user applies under real row locks.
"""

import asyncio

import pytest
from sqlalchemy import func, select

from emerge.core.database.retry_policy import RetryConfig, TransactionRetryPolicy
from emerge.database.models import ProcessedActivityRow, UserProgressionRow
from emerge.domain.models import (
    Attribute,
    Difficulty,
    HabitCompleted,
    TribeJoined,
    UnknownActivity,
)
from emerge.modules.progression.service import ProgressionService
from emerge.modules.progression.sql_store import SqlProgressionStore
from tests.conftest import FIXED_NOW

pytestmark = [pytest.mark.integration, pytest.mark.database]


async def _no_sleep(_seconds):
    return None


@pytest.fixture
def sql_store(database_service):
    return SqlProgressionStore(database_service)


@pytest.fixture
def sql_progression(sql_store, config_manager, event_bus):
    return ProgressionService(
        sql_store,
        config_manager,
        event_bus,
        retry_policy=TransactionRetryPolicy(RetryConfig(max_attempts=20), sleep=_no_sleep),
        clock=lambda: FIXED_NOW,
    )


async def _count(database_service, model):
    async with database_service.get_session() as session:
        return await session.scalar(select(func.count()).select_from(model))


class TestSqlProgressionStore:
    async def test_missing_user(self, sql_store):
        assert await sql_store.get("nobody") is None

    async def test_first_apply_creates_row_and_marker(
        self, sql_progression, sql_store, database_service
    ):
        result = await sql_progression.apply(
            "u1",
            HabitCompleted(
                user_id="u1",
                event_id="e1",
                difficulty=Difficulty.MEDIUM,
                attribute=Attribute.FOCUS,
            ),
        )

        snapshot = await sql_store.get("u1")
        assert snapshot.version == 1
        assert snapshot.record == result.record
        assert snapshot.record.attribute_xp == {"focus": 20}
        assert snapshot.record.updated_at == FIXED_NOW
        assert snapshot.world == result.world
        assert snapshot.world.zones["shrine"].milestone == 1

        async with database_service.get_session() as session:
            marker = await session.get(ProcessedActivityRow, ("u1", "e1"))
            assert marker.xp_earned == 20
            assert marker.activity_type == "habit_completion"

    async def test_version_bumps_per_write(self, sql_progression, sql_store):
        await sql_progression.apply("u1", HabitCompleted(user_id="u1", event_id="e1"))
        await sql_progression.apply("u1", TribeJoined(user_id="u1", event_id="e2"))

        snapshot = await sql_store.get("u1")
        assert snapshot.version == 2
        assert snapshot.record.total_xp == 60
        assert snapshot.record.recent_event_ids == ("e1", "e2")

    async def test_redelivery_does_not_double_count(
        self, sql_progression, sql_store, database_service
    ):
        event = HabitCompleted(user_id="u1", event_id="e1", difficulty=Difficulty.HARD)

        await sql_progression.apply("u1", event)
        replay = await sql_progression.apply("u1", event)

        assert replay.duplicate
        assert (await sql_store.get("u1")).record.total_xp == 30
        assert await _count(database_service, ProcessedActivityRow) == 1

    async def test_marker_detects_replay_beyond_recent_log(
        self, sql_store, config_manager, event_bus, database_service
    ):
        config_manager.set("progression.idempotency.recent_event_capacity", 1)
        service = ProgressionService(sql_store, config_manager, event_bus)

        await service.apply("u1", HabitCompleted(user_id="u1", event_id="a"))
        await service.apply("u1", HabitCompleted(user_id="u1", event_id="b"))
        replay = await service.apply("u1", HabitCompleted(user_id="u1", event_id="a"))

        assert replay.duplicate
        assert (await sql_store.get("u1")).record.total_xp == 20

    async def test_unknown_activity_writes_nothing(self, sql_progression, database_service):
        await sql_progression.apply(
            "u1", UnknownActivity(user_id="u1", event_id="x", raw_type="left_tribe")
        )

        assert await _count(database_service, UserProgressionRow) == 0

    async def test_concurrent_applies_serialize(self, sql_progression, sql_store):
        events = [
            HabitCompleted(user_id="u1", event_id=f"e{i}", difficulty=Difficulty.MEDIUM)
            for i in range(10)
        ]

        results = await asyncio.gather(*(sql_progression.apply("u1", e) for e in events))

        snapshot = await sql_store.get("u1")
        assert snapshot.record.total_xp == 200
        assert snapshot.record.level == 3
        assert snapshot.version == 10
        assert sum(len(r.events) for r in results) == 2

    async def test_concurrent_first_writes_for_new_user(self, sql_progression, sql_store):
        events = [TribeJoined(user_id="fresh", event_id=f"t{i}") for i in range(4)]

        await asyncio.gather(*(sql_progression.apply("fresh", e) for e in events))

        snapshot = await sql_store.get("fresh")
        assert snapshot.record.total_xp == 200
        assert snapshot.version == 4

    async def test_health_check(self, database_service):
        assert await database_service.health_check()
