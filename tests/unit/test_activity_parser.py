"""
Unit tests for activity payload parsing.
"""

import pytest

from emerge.domain.models import (
    Attribute,
    ChallengeJoined,
    Difficulty,
    HabitCompleted,
    ReflectionSaved,
    TribeJoined,
    UnknownActivity,
)
from emerge.modules.progression.parser import parse_activity_event
from emerge.modules.shared.exceptions import MalformedEventError


def _payload(**overrides):
    payload = {"userId": "u1", "eventId": "e1", "activityType": "habit_completion"}
    payload.update(overrides)
    return payload


@pytest.mark.unit
class TestParseKnownTypes:
    def test_full_habit_completion(self):
        event = parse_activity_event(
            _payload(habitId="h9", difficulty="hard", attribute="focus", streakDay=14)
        )

        assert event == HabitCompleted(
            user_id="u1",
            event_id="e1",
            habit_id="h9",
            difficulty=Difficulty.HARD,
            attribute=Attribute.FOCUS,
            streak_day=14,
        )

    def test_minimal_habit_completion(self):
        event = parse_activity_event(_payload())

        assert isinstance(event, HabitCompleted)
        assert event.difficulty is None
        assert event.attribute is None
        assert event.streak_day is None

    @pytest.mark.parametrize(
        "activity_type,case",
        [
            ("joined_challenge", ChallengeJoined),
            ("joined_tribe", TribeJoined),
            ("reflection_saved", ReflectionSaved),
        ],
    )
    def test_simple_cases(self, activity_type, case):
        event = parse_activity_event(_payload(activityType=activity_type))

        assert event == case(user_id="u1", event_id="e1")

    def test_habit_fields_ignored_on_other_cases(self):
        event = parse_activity_event(
            _payload(activityType="joined_tribe", difficulty="nonsense", habitId=3)
        )

        assert event == TribeJoined(user_id="u1", event_id="e1")

    @pytest.mark.parametrize(
        "activity_type,case",
        [
            ("joined_challenge", ChallengeJoined),
            ("joined_tribe", TribeJoined),
            ("reflection_saved", ReflectionSaved),
        ],
    )
    def test_streak_day_read_for_every_known_type(self, activity_type, case):
        event = parse_activity_event(_payload(activityType=activity_type, streakDay=14))

        assert event == case(user_id="u1", event_id="e1", streak_day=14)

    def test_bad_streak_day_rejected_on_non_habit(self):
        with pytest.raises(MalformedEventError) as exc_info:
            parse_activity_event(_payload(activityType="joined_tribe", streakDay=-4))

        assert exc_info.value.field == "streakDay"

    def test_streak_day_ignored_for_unknown_type(self):
        event = parse_activity_event(_payload(activityType="left_tribe", streakDay="x"))

        assert isinstance(event, UnknownActivity)

    def test_alternate_keys(self):
        event = parse_activity_event(
            {"user_id": "u2", "activityId": "a7", "type": "reflection_saved"}
        )

        assert event == ReflectionSaved(user_id="u2", event_id="a7")

    def test_unknown_type(self):
        event = parse_activity_event(_payload(activityType="left_tribe"))

        assert event == UnknownActivity(user_id="u1", event_id="e1", raw_type="left_tribe")
        assert not event.is_known


@pytest.mark.unit
class TestParseMalformed:
    def test_non_mapping(self):
        with pytest.raises(MalformedEventError):
            parse_activity_event(["u1", "e1"])

    @pytest.mark.parametrize("missing", ["userId", "eventId", "activityType"])
    def test_missing_required_key(self, missing):
        payload = _payload()
        del payload[missing]

        with pytest.raises(MalformedEventError) as exc_info:
            parse_activity_event(payload)

        assert exc_info.value.field == missing
        assert exc_info.value.is_retryable is False

    @pytest.mark.parametrize("bad", ["", "   ", 42])
    def test_invalid_user_id(self, bad):
        with pytest.raises(MalformedEventError):
            parse_activity_event(_payload(userId=bad))

    def test_bad_difficulty(self):
        with pytest.raises(MalformedEventError) as exc_info:
            parse_activity_event(_payload(difficulty="extreme"))

        assert exc_info.value.field == "difficulty"
        assert exc_info.value.event_id == "e1"

    def test_bad_attribute(self):
        with pytest.raises(MalformedEventError):
            parse_activity_event(_payload(attribute="luck"))

    @pytest.mark.parametrize("streak", [-1, 2.5, "7", True])
    def test_bad_streak_day(self, streak):
        with pytest.raises(MalformedEventError) as exc_info:
            parse_activity_event(_payload(streakDay=streak))

        assert exc_info.value.field == "streakDay"

    def test_error_code(self):
        with pytest.raises(MalformedEventError) as exc_info:
            parse_activity_event({})

        assert exc_info.value.error_code == "MALFORMED_EVENT"
