from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from productivitywise.errors import ActiveSessionExists
from productivitywise.storage import BreakSuggestionPatch, FocusSessionPatch
from productivitywise.storage.models import ActivityLog, User

T0 = datetime(2025, 1, 6, 10, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_create_user_is_idempotent_per_slack_id(store):
    first = await store.create_user(
        slack_user_id="U1", slack_team_id="T1", name="A", email="a@x", timezone="UTC"
    )
    second = await store.create_user(
        slack_user_id="U1", slack_team_id="T1", name="B", email="b@x", timezone="UTC"
    )

    assert first.id == second.id
    assert second.name == "A"
    assert (await store.get_user_by_slack_id("U1")).id == first.id


@pytest.mark.asyncio
async def test_second_active_session_is_rejected(store, user):
    await store.create_session(user_id=user.id, duration=25, start_time=T0)

    with pytest.raises(ActiveSessionExists):
        await store.create_session(user_id=user.id, duration=25, start_time=T0)


@pytest.mark.asyncio
async def test_terminal_sessions_do_not_block_a_new_one(store, user):
    first = await store.create_session(user_id=user.id, duration=25, start_time=T0)
    await store.update_session(
        first.id, FocusSessionPatch(status="completed", end_time=T0 + timedelta(minutes=5))
    )

    second = await store.create_session(user_id=user.id, duration=45, start_time=T0)

    assert second.is_active
    assert (await store.get_active_session(user.id)).id == second.id


@pytest.mark.asyncio
async def test_conditional_update_only_applies_to_expected_status(store, user):
    session = await store.create_session(user_id=user.id, duration=25, start_time=T0)
    ended = await store.update_session(
        session.id,
        FocusSessionPatch(status="completed", end_time=T0 + timedelta(minutes=1)),
        expected_status="active",
    )
    again = await store.update_session(
        session.id,
        FocusSessionPatch(status="interrupted", end_time=T0 + timedelta(minutes=2)),
        expected_status="active",
    )

    assert ended.status == "completed"
    assert again is None
    stored = await store.get_session(session.id)
    assert stored.status == "completed"
    assert stored.end_time == T0 + timedelta(minutes=1)


@pytest.mark.asyncio
async def test_timestamps_round_trip_as_aware_utc(store, user):
    paris = timezone(timedelta(hours=1))
    session = await store.create_session(
        user_id=user.id, duration=25, start_time=datetime(2025, 1, 6, 11, 0, tzinfo=paris)
    )

    assert session.start_time == T0
    assert session.start_time.tzinfo is not None
    assert session.scheduled_end == T0 + timedelta(minutes=25)


@pytest.mark.asyncio
async def test_suggestion_accept_is_applied_once(store, user):
    suggestion = await store.create_suggestion(
        user_id=user.id, type="walk", message="m", reason="r", suggested_at=T0
    )
    assert suggestion.accepted is False
    assert suggestion.accepted_at is None

    first = await store.update_suggestion(
        suggestion.id,
        BreakSuggestionPatch(accepted=True, accepted_at=T0),
        only_if_unaccepted=True,
    )
    second = await store.update_suggestion(
        suggestion.id,
        BreakSuggestionPatch(accepted=True, accepted_at=T0 + timedelta(minutes=3)),
        only_if_unaccepted=True,
    )

    assert first.accepted and first.accepted_at == T0
    assert second is None


@pytest.mark.asyncio
async def test_get_meetings_returns_overlapping_meetings_in_order(store, user):
    await store.create_meeting(
        user_id=user.id, title="late", start_time=T0 + timedelta(hours=2),
        end_time=T0 + timedelta(hours=3),
    )
    await store.create_meeting(
        user_id=user.id, title="spanning", start_time=T0 - timedelta(hours=1),
        end_time=T0 + timedelta(minutes=30),
    )
    await store.create_meeting(
        user_id=user.id, title="outside", start_time=T0 + timedelta(hours=5),
        end_time=T0 + timedelta(hours=6),
    )

    meetings = await store.get_meetings(
        user_id=user.id, start=T0, end=T0 + timedelta(hours=4)
    )

    assert [m.title for m in meetings] == ["spanning", "late"]


@pytest.mark.asyncio
async def test_log_activity_appends(store, user):
    await store.log_activity(user_id=user.id, action="focus_session_started", details={"a": 1})
    await store.log_activity(user_id=user.id, action="focus_session_ended")

    assert await store.list_activity(user_id=user.id) == [
        ("focus_session_started", {"a": 1}),
        ("focus_session_ended", None),
    ]


@pytest.mark.asyncio
async def test_row_defaults_are_naive_utc(store, sessionmaker, user):
    before = datetime.now(timezone.utc).replace(tzinfo=None)
    await store.log_activity(user_id=user.id, action="focus_session_started")

    async with sessionmaker() as session:
        row = await session.get(User, user.id)
        logged = (await session.execute(select(ActivityLog))).scalars().first()

    assert row.created_at.tzinfo is None
    assert logged.timestamp.tzinfo is None
    assert before - timedelta(seconds=5) <= logged.timestamp <= before + timedelta(seconds=5)
