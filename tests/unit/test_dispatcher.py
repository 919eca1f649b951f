"""
Unit tests for ActivityDispatcher.

Raw payload in, committed record and published events out.
"""

import pytest

from emerge.core.exceptions import TransactionConflictError
from emerge.core.event.types import ListenerPriority
from emerge.domain.models import LEVELED_UP, ProgressionRecord
from emerge.modules.progression.dispatcher import ActivityDispatcher
from emerge.modules.shared.exceptions import ProgressionApplyError


@pytest.fixture
def dispatcher(progression_service):
    return ActivityDispatcher(progression_service)


def payload(**overrides):
    data = {
        "userId": "u1",
        "eventId": "e1",
        "activityType": "habit_completion",
        "difficulty": "medium",
        "attribute": "focus",
    }
    data.update(overrides)
    return data


@pytest.mark.unit
class TestDispatch:
    async def test_valid_payload_applied(self, dispatcher, memory_store):
        result = await dispatcher.handle(payload())

        assert result.xp_gained == 20
        assert (await memory_store.get("u1")).record.total_xp == 20

    async def test_streak_day_on_challenge_payload(self, dispatcher, memory_store):
        result = await dispatcher.handle(
            {"userId": "u1", "eventId": "e1", "activityType": "joined_challenge", "streakDay": 14}
        )

        assert result.xp_gained == 30
        assert result.record.streak == 14
        assert (await memory_store.get("u1")).record.total_xp == 30

    async def test_malformed_payload_dropped(self, dispatcher, memory_store):
        result = await dispatcher.handle(payload(difficulty="impossible"))

        assert result is None
        assert dispatcher.dropped == 1
        assert await memory_store.get("u1") is None

    async def test_missing_user_dropped(self, dispatcher, memory_store):
        data = payload()
        del data["userId"]

        assert await dispatcher.handle(data) is None
        assert memory_store.commit_count == 0

    async def test_unknown_type_is_noop(self, dispatcher, memory_store):
        result = await dispatcher.handle(payload(activityType="left_tribe"))

        assert result.xp_gained == 0
        assert memory_store.commit_count == 0

    async def test_redelivery_is_idempotent(self, dispatcher, memory_store):
        await dispatcher.handle(payload())
        result = await dispatcher.handle(payload())

        assert result.duplicate
        assert (await memory_store.get("u1")).record.total_xp == 20

    async def test_apply_failure_propagates_for_redelivery(self, dispatcher, memory_store):
        memory_store.fail_next_commit(TransactionConflictError("u1"), times=5)

        with pytest.raises(ProgressionApplyError):
            await dispatcher.handle(payload())


@pytest.mark.unit
class TestEventPublication:
    async def test_level_up_published_after_commit(self, dispatcher, memory_store, event_bus):
        seen = []

        async def listener(data):
            snapshot = await memory_store.get(data["user_id"])
            seen.append((data["new_level"], snapshot.record.level))

        event_bus.subscribe(LEVELED_UP, listener, priority=ListenerPriority.HIGH)
        memory_store.seed(ProgressionRecord(user_id="u1", total_xp=90))

        await dispatcher.handle(payload())

        assert seen == [(2, 2)]

    async def test_no_publication_without_level_up(self, dispatcher, event_bus):
        await dispatcher.handle(payload())

        assert event_bus.metrics.events_published == {}

    async def test_failing_listener_does_not_fail_dispatch(
        self, dispatcher, memory_store, event_bus
    ):
        async def broken(_data):
            raise RuntimeError("listener exploded")

        event_bus.subscribe(LEVELED_UP, broken)
        memory_store.seed(ProgressionRecord(user_id="u1", total_xp=95))

        result = await dispatcher.handle(payload())

        assert result.record.level == 2
        assert event_bus.metrics.listener_errors[LEVELED_UP] == 1

    async def test_commit_failure_publishes_nothing(self, dispatcher, memory_store, event_bus):
        memory_store.seed(ProgressionRecord(user_id="u1", total_xp=95))
        memory_store.fail_next_commit(RuntimeError("disk full"))

        with pytest.raises(RuntimeError):
            await dispatcher.handle(payload())

        assert event_bus.metrics.events_published == {}
