"""
Unit tests for ServiceContainer wiring.

Exercises the whole in-memory engine: payload in, record, insight and
level-up notification out.
"""

import pytest

from emerge.core.database.retry_policy import RetryConfig, TransactionRetryPolicy
from emerge.core.services import ServiceContainer


async def _no_sleep(_seconds):
    return None


@pytest.fixture
async def container():
    container = ServiceContainer.in_memory(
        retry_policy=TransactionRetryPolicy(RetryConfig(), sleep=_no_sleep)
    )
    await container.initialize()
    yield container
    await container.shutdown()


@pytest.mark.unit
class TestServiceContainer:
    def test_services_require_initialize(self):
        container = ServiceContainer.in_memory()

        with pytest.raises(RuntimeError):
            container.progression

    async def test_health_check(self, container):
        health = container.health_check()

        assert health["initialized"] is True
        assert health["listeners"] == 1

    async def test_initialize_twice_keeps_single_listener(self, container):
        await container.initialize()

        assert container.health_check()["listeners"] == 1

    async def test_level_up_flows_to_notification_and_insight(self, container):
        for i in range(3):
            await container.dispatcher.handle(
                {
                    "userId": "u1",
                    "eventId": f"e{i}",
                    "activityType": "habit_completion",
                    "difficulty": "hard",
                    "attribute": "creativity",
                    "streakDay": 2,
                }
            )
        await container.dispatcher.handle(
            {"userId": "u1", "eventId": "t1", "activityType": "joined_tribe"}
        )

        snapshot = await container.progression.get_record("u1")
        assert snapshot.record.total_xp == 140
        assert snapshot.record.level == 2
        assert snapshot.world.zones["studio"].milestone == 3

        sent = container.notification_sink.sent
        assert [(n.old_level, n.new_level) for n in sent] == [(1, 2)]

        insight = await container.insight.get_insight("u1")
        assert insight.text == "Level 2 achieved! Progress over perfection."

    async def test_shutdown_unsubscribes_notifier(self, container):
        await container.shutdown()

        health = container.health_check()
        assert health["initialized"] is False
        assert health["listeners"] == 0
