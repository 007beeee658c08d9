from datetime import datetime, timezone

import pytest

from productivitywise.engine import responses
from productivitywise.engine.intents import Intent, IntentAction
from productivitywise.engine.productivity import ProductivitySummary

NOW = datetime(2025, 1, 6, 10, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    ("action_id", "value", "check"),
    [
        (responses.END_FOCUS, "s1", lambda i: i.is_end and i.parameters.session_id == "s1"),
        (
            responses.TAKE_BREAK,
            "b1",
            lambda i: i.parameters.accept and i.parameters.suggestion_id == "b1",
        ),
        (
            responses.TAKE_BREAK_OVERRIDE,
            "walk",
            lambda i: i.parameters.override and i.parameters.break_type == "walk",
        ),
        (responses.DEFER_BREAK, "b1", lambda i: i.parameters.defer),
        (responses.START_FOCUS_25, None, lambda i: i.parameters.duration == 25),
        (responses.START_FOCUS_45, None, lambda i: i.parameters.duration == 45),
        (responses.SUGGEST_BREAK_COFFEE, None, lambda i: i.parameters.break_type == "hydration"),
        (responses.SUGGEST_BREAK_STRETCH, None, lambda i: i.parameters.break_type == "stretch"),
        (
            responses.SHOW_PRODUCTIVITY,
            None,
            lambda i: i.action is IntentAction.PRODUCTIVITY,
        ),
    ],
)
def test_every_button_maps_to_an_interactive_intent(action_id, value, check):
    intent = responses.intent_for_action(action_id, value)

    assert intent is not None
    assert intent.source == "interactive"
    assert check(intent)


def test_every_action_id_is_mapped():
    assert all(responses.intent_for_action(a, "x") is not None for a in responses.ACTION_IDS)
    assert responses.intent_for_action("nope") is None


@pytest.mark.parametrize(
    ("moment", "tz", "expected"),
    [
        (datetime(2025, 1, 6, 0, 5, tzinfo=timezone.utc), "UTC", "12:05 AM"),
        (datetime(2025, 1, 6, 12, 0, tzinfo=timezone.utc), "UTC", "12:00 PM"),
        (datetime(2025, 1, 6, 15, 30, tzinfo=timezone.utc), "Europe/Amsterdam", "4:30 PM"),
    ],
)
def test_format_clock(moment, tz, expected):
    assert responses.format_clock(moment, tz) == expected


def test_format_minutes():
    assert responses.format_minutes(0) == "0h 0m"
    assert responses.format_minutes(135) == "2h 15m"


def test_break_message_defaults_to_general():
    assert responses.break_message("walk").startswith("🚶")
    assert responses.break_message("nap") == responses.BREAK_MESSAGES["general"]


def test_to_slack_omits_empty_fields():
    assert responses.Response(text="hi").to_slack() == {"text": "hi"}
    payload = responses.Response(
        text="hi", blocks=[responses.divider()], replace_original=True
    ).to_slack()
    assert payload == {"text": "hi", "blocks": [{"type": "divider"}], "replace_original": True}


def test_provisional_replies_per_intent():
    assert responses.provisional(Intent.focus(40)).text == (
        "🎯 Focus Mode Activated! Duration: 40 minutes"
    )
    assert responses.provisional(Intent.break_("walk")).text == (
        "☕ Your walk break suggestion is being prepared!"
    )
    assert responses.provisional(Intent.productivity()).text.startswith("📊")
    assert responses.provisional(Intent.unsupported()).text == responses.PROVISIONAL_ACK_TEXT


def test_apology_distinguishes_end_from_start():
    assert "end focus" in responses.apology(Intent.end_focus()).text
    assert "start focus" in responses.apology(Intent.focus()).text
    assert responses.apology(None).text.startswith("I encountered an issue")


def test_empty_summary_mentions_missing_calendar():
    summary = ProductivitySummary(
        window_start=NOW,
        window_end=NOW,
        timezone="UTC",
        meeting_minutes=0,
        meeting_count=0,
        back_to_back_meetings=0,
        focus_minutes=50,
        sessions_started=2,
        sessions_completed=2,
        breaks_suggested=0,
        breaks_accepted=0,
    )

    response = responses.productivity_summary(summary)

    texts = [b["text"]["text"] for b in response.blocks if b["type"] == "section" and "text" in b]
    assert any(t.startswith("📅 *No meetings found*") for t in texts)
    fields = next(b["fields"] for b in response.blocks if "fields" in b)
    assert {"type": "mrkdwn", "text": "*Focus Time:*\n0h 50m"} in fields


def test_unsupported_hints():
    assert len(responses.unsupported(None).blocks) == 1
    assert responses.unsupported("help").text.startswith("👋")
    productivity = responses.unsupported("productivity")
    assert productivity.blocks[-1]["elements"][0]["action_id"] == responses.SHOW_PRODUCTIVITY
