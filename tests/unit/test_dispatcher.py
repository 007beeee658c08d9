import asyncio
from datetime import timedelta

import pytest

from productivitywise.engine import responses
from productivitywise.engine.intents import Intent, IntentAction


class SlowStore:
    """Delegates to the real store but stalls user lookups."""

    def __init__(self, inner, delay):
        self._inner = inner
        self._delay = delay

    async def get_user_by_slack_id(self, slack_user_id):
        await asyncio.sleep(self._delay)
        return await self._inner.get_user_by_slack_id(slack_user_id)

    def __getattr__(self, name):
        return getattr(self._inner, name)


class BrokenStore:
    def __init__(self, inner):
        self._inner = inner

    async def get_user_by_slack_id(self, slack_user_id):
        raise RuntimeError("database unavailable")

    def __getattr__(self, name):
        return getattr(self._inner, name)


def _button_values(response, action_id):
    return [
        element.get("value")
        for block in response.blocks
        if block["type"] == "actions"
        for element in block["elements"]
        if element["action_id"] == action_id
    ]


@pytest.mark.asyncio
async def test_focus_command_starts_session_and_provisions_user(
    make_dispatcher, store, executor
):
    dispatcher = make_dispatcher()

    response = await dispatcher.handle_command("/focus", "30", "U9", "T9")
    await executor.drain()

    assert response.text == "🎯 Focus mode activated for 30 minutes"
    user = await store.get_user_by_slack_id("U9")
    assert user.name == "Slack User"
    assert user.email == "U9@slack.local"
    assert user.slack_team_id == "T9"
    session = await store.get_active_session(user.id)
    assert session.duration == 30
    assert _button_values(response, responses.END_FOCUS) == [session.id]
    actions = [a for a, _ in await store.list_activity(user_id=user.id)]
    assert actions[0] == "user_auto_created"


@pytest.mark.asyncio
async def test_focus_end_without_session(make_dispatcher):
    response = await make_dispatcher().handle_command("/focus", "end", "U9")

    assert response.text == "❌ No active focus session found."


@pytest.mark.asyncio
async def test_second_focus_command_reports_active_session(make_dispatcher):
    dispatcher = make_dispatcher()
    await dispatcher.handle_command("/focus", "", "U9")

    response = await dispatcher.handle_command("/focus", "45", "U9")

    assert response.text.startswith("You already have an active focus session")


@pytest.mark.asyncio
async def test_timeout_answers_provisionally_and_finishes_in_background(
    make_dispatcher, store, executor, pusher
):
    dispatcher = make_dispatcher(timeout_ms=50, store_override=SlowStore(store, 0.3))

    response = await dispatcher.handle_command("/focus", "25", "U9")

    assert response.text == "🎯 Focus Mode Activated! Duration: 25 minutes"
    assert await store.get_user_by_slack_id("U9") is None

    await executor.drain()

    user = await store.get_user_by_slack_id("U9")
    assert (await store.get_active_session(user.id)).duration == 25
    assert [p["text"] for p in pusher.pushed] == ["🎯 Focus mode activated for 25 minutes"]


@pytest.mark.asyncio
async def test_execution_error_returns_apology(make_dispatcher, store):
    dispatcher = make_dispatcher(store_override=BrokenStore(store))

    start = await dispatcher.handle_command("/focus", "25", "U9")
    end = await dispatcher.handle_command("/focus", "end", "U9")

    assert start.text.startswith("❌ Failed to start focus session")
    assert end.text.startswith("❌ Failed to end focus session")


@pytest.mark.asyncio
async def test_unknown_execution_outcome_is_not_answered(make_dispatcher, executor, monkeypatch):
    async def _run(*args, **kwargs):
        return object()

    monkeypatch.setattr(executor, "run", _run)
    dispatcher = make_dispatcher()

    with pytest.raises(TypeError, match="Unexpected execution outcome"):
        await dispatcher.dispatch(Intent.productivity(), "U9")


@pytest.mark.asyncio
async def test_free_text_command_is_acknowledged_then_answered_by_dm(
    make_dispatcher, generator_cls, store, executor, pusher
):
    generator = generator_cls(
        '{"action": "focus", "parameters": {"duration": 90}, "confidence": 0.9}'
    )
    dispatcher = make_dispatcher(generator)

    response = await dispatcher.handle_command("/focus", "for the whole afternoon", "U9")

    assert response.text == responses.PROVISIONAL_ACK_TEXT
    await executor.drain()

    assert len(pusher.pushed) == 1
    assert pusher.pushed[0]["user"] == "U9"
    assert pusher.pushed[0]["text"] == "🎯 Focus mode activated for 90 minutes"
    assert any(
        "Recommendations" in block.get("text", {}).get("text", "")
        for block in pusher.pushed[0]["blocks"]
    )
    user = await store.get_user_by_slack_id("U9")
    assert (await store.get_active_session(user.id)).duration == 90


@pytest.mark.asyncio
async def test_break_buttons_round_trip(make_dispatcher, store, executor):
    dispatcher = make_dispatcher()

    offered = await dispatcher.handle_command("/break", "walk", "U9")
    (suggestion_id,) = _button_values(offered, responses.TAKE_BREAK)

    taken = await dispatcher.handle_interaction(
        responses.TAKE_BREAK, suggestion_id, "U9", interaction_id="trigger-1"
    )
    again = await dispatcher.handle_interaction(
        responses.TAKE_BREAK, suggestion_id, "U9", interaction_id="trigger-2"
    )
    await executor.drain()

    assert offered.text.startswith("☕ Break time!")
    assert taken.text == "☕ Break time started!"
    assert taken.replace_original
    assert again.text.startswith("☕ This break is already underway")
    assert (await store.get_suggestion(suggestion_id)).accepted


@pytest.mark.asyncio
async def test_rejected_break_offers_override(make_dispatcher, store, clock):
    dispatcher = make_dispatcher()
    user = await dispatcher.ensure_user("U9")
    await store.create_meeting(
        user_id=user.id,
        start_time=clock() + timedelta(minutes=4),
        end_time=clock() + timedelta(minutes=60),
    )

    rejected = await dispatcher.handle_command("/break", "stretch", "U9")
    (value,) = _button_values(rejected, responses.TAKE_BREAK_OVERRIDE)
    forced = await dispatcher.handle_interaction(responses.TAKE_BREAK_OVERRIDE, value, "U9")

    assert rejected.text == "⏰ Next meeting in 4 minutes"
    assert value == "stretch"
    assert forced.text == "☕ Quick break time!"


@pytest.mark.asyncio
async def test_duplicate_interaction_is_ignored(make_dispatcher, store):
    dispatcher = make_dispatcher()

    first = await dispatcher.handle_interaction(
        responses.START_FOCUS_25, None, "U9", interaction_id="t-1"
    )
    duplicate = await dispatcher.handle_interaction(
        responses.START_FOCUS_25, None, "U9", interaction_id="t-1"
    )

    assert first.text == "🎯 Focus mode activated for 25 minutes"
    assert duplicate is None


@pytest.mark.asyncio
async def test_unknown_action_is_ignored(make_dispatcher):
    assert await make_dispatcher().handle_interaction("launch_rocket", None, "U9") is None


@pytest.mark.asyncio
async def test_end_focus_button_replaces_original(make_dispatcher):
    dispatcher = make_dispatcher()
    started = await dispatcher.handle_command("/focus", "25", "U9")
    (session_id,) = _button_values(started, responses.END_FOCUS)

    ended = await dispatcher.handle_interaction(responses.END_FOCUS, session_id, "U9")

    assert ended.text == "✅ Focus session ended!"
    assert ended.replace_original


@pytest.mark.asyncio
async def test_unsupported_message_offers_matching_quick_actions(make_dispatcher, generator_cls):
    generator = generator_cls('{"action": "unsupported", "parameters": {}, "confidence": 0.2}')
    dispatcher = make_dispatcher(generator)

    response = await dispatcher.handle_message("could you help me focus on taxes", "U9")

    assert response.text == responses.UNSUPPORTED_TEXT
    assert _button_values(response, responses.START_FOCUS_25) == [None]


@pytest.mark.asyncio
async def test_greeting_uses_generated_phrase(make_dispatcher, generator_cls):
    generator = generator_cls(
        '{"action": "greeting", "parameters": {}, "confidence": 0.95}',
        "Hey there! I can run focus sessions and suggest breaks.",
    )

    response = await make_dispatcher(generator).handle_message("good morning!", "U9")

    assert response.text == "Hey there! I can run focus sessions and suggest breaks."


@pytest.mark.asyncio
async def test_greeting_falls_back_when_generation_fails(make_dispatcher, generator_cls):
    generator = generator_cls(
        '{"action": "greeting", "parameters": {}, "confidence": 0.95}',
        RuntimeError("rate limited"),
    )

    response = await make_dispatcher(generator).handle_message("hello friend", "U9")

    assert response.text == responses.FALLBACK_REPLIES[IntentAction.GREETING]


@pytest.mark.asyncio
async def test_message_failure_returns_generic_apology(make_dispatcher, store, generator_cls):
    generator = generator_cls('{"action": "productivity", "parameters": {}, "confidence": 0.9}')
    dispatcher = make_dispatcher(generator, store_override=BrokenStore(store))

    response = await dispatcher.handle_message("how did my week go?", "U9")

    assert response.text.startswith("I encountered an issue processing your request")
