"""Slack-ready replies: text plus Block Kit blocks.

Buttons carry stable ``action_id``/``value`` pairs; ``intent_for_action`` maps a
pressed button back to an ``Intent`` so it re-enters the dispatcher without
going through the classifier.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from productivitywise.storage import FocusSessionRecord

from .breaks import BreakAcceptance, BreakRequest
from .intents import Intent, IntentAction
from .meetings import resolve_timezone
from .productivity import ProductivitySummary

END_FOCUS = "end_focus"
TAKE_BREAK = "take_break"
TAKE_BREAK_OVERRIDE = "take_break_override"
DEFER_BREAK = "defer_break"
START_FOCUS_25 = "start_focus_25"
START_FOCUS_45 = "start_focus_45"
SUGGEST_BREAK_COFFEE = "suggest_break_coffee"
SUGGEST_BREAK_STRETCH = "suggest_break_stretch"
SHOW_PRODUCTIVITY = "show_productivity"

ACTION_IDS: tuple[str, ...] = (
    END_FOCUS,
    TAKE_BREAK,
    TAKE_BREAK_OVERRIDE,
    DEFER_BREAK,
    START_FOCUS_25,
    START_FOCUS_45,
    SUGGEST_BREAK_COFFEE,
    SUGGEST_BREAK_STRETCH,
    SHOW_PRODUCTIVITY,
)

BREAK_MESSAGES: dict[str, str] = {
    "hydration": "💧 Stay hydrated! Time for a water break.",
    "stretch": "🤸‍♀️ Your body needs movement. Take a quick stretch break!",
    "meditation": "🧘‍♂️ Reset your mind with a 5-minute meditation break.",
    "walk": "🚶‍♀️ Step outside for a refreshing walk.",
    "general": "⏰ Time for a wellness break!",
}

FALLBACK_REPLIES: dict[IntentAction, str] = {
    IntentAction.GREETING: (
        "Hello! I'm your productivity assistant. I can help you with focus sessions, "
        "breaks, and productivity tracking. How can I assist you today?"
    ),
    IntentAction.FOCUS: (
        "I've started your focus session! Remember to eliminate distractions and set "
        "clear goals for maximum productivity."
    ),
    IntentAction.BREAK: (
        "Time for a well-deserved break! Stepping away helps maintain your energy and "
        "creativity throughout the day."
    ),
    IntentAction.PRODUCTIVITY: (
        "Here's your productivity summary! Regular tracking helps you understand your "
        "work patterns and optimize your schedule."
    ),
    IntentAction.UNSUPPORTED: (
        "I'm here to help with productivity features like focus sessions, breaks, and metrics!"
    ),
}

RECOMMENDATIONS: dict[IntentAction, tuple[str, ...]] = {
    IntentAction.GREETING: (
        "Try `/focus 25` to start a 25-minute focus session",
        "Use `/break` to get break suggestions when you need a rest",
        "Check `/productivity` to see your daily productivity metrics",
    ),
    IntentAction.FOCUS: (
        "Try the Pomodoro Technique: 25 minutes focused work, 5 minute break",
        "Turn off notifications and close unnecessary browser tabs",
        "Have water and snacks ready before starting your session",
    ),
    IntentAction.BREAK: (
        "Step away from your screen - even 5 minutes helps reset your mind",
        "Try some light stretching or deep breathing exercises",
        "Hydrate! Dehydration can significantly impact focus and energy",
    ),
    IntentAction.PRODUCTIVITY: (
        "Schedule regular focus blocks in your calendar for deep work",
        "Take breaks every 60-90 minutes to maintain peak performance",
        "Review and optimize your meeting schedule weekly",
    ),
}

UNSUPPORTED_TEXT = (
    "Sorry, I cannot answer that. I'm here to help with your productivity - try asking "
    "about focus sessions, breaks, or your productivity metrics!"
)
PROVISIONAL_ACK_TEXT = "⏳ On it! I'll send you the details in a DM in a moment."

_APOLOGIES: dict[IntentAction, str] = {
    IntentAction.FOCUS: "❌ Failed to start focus session. Please try again in a moment.",
    IntentAction.BREAK: "❌ Failed to process break request. Please try again.",
    IntentAction.PRODUCTIVITY: "❌ Failed to get productivity summary. Please try again.",
}
_END_FOCUS_APOLOGY = "❌ Failed to end focus session. Please try again in a moment."
_GENERIC_APOLOGY = (
    "I encountered an issue processing your request. Please try again or use the direct "
    "Slack commands (/focus, /break, /productivity)."
)


@dataclass(frozen=True)
class Response:
    text: str
    blocks: list[dict[str, Any]] = field(default_factory=list)
    replace_original: bool = False

    def to_slack(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"text": self.text}
        if self.blocks:
            payload["blocks"] = self.blocks
        if self.replace_original:
            payload["replace_original"] = True
        return payload


# -- block helpers -----------------------------------------------------------


def section(text: str, *, accessory: dict[str, Any] | None = None) -> dict[str, Any]:
    block: dict[str, Any] = {"type": "section", "text": {"type": "mrkdwn", "text": text}}
    if accessory:
        block["accessory"] = accessory
    return block


def fields_section(items: list[str]) -> dict[str, Any]:
    return {"type": "section", "fields": [{"type": "mrkdwn", "text": t} for t in items]}


def header(text: str) -> dict[str, Any]:
    return {"type": "header", "text": {"type": "plain_text", "text": text}}


def context(text: str) -> dict[str, Any]:
    return {"type": "context", "elements": [{"type": "mrkdwn", "text": text}]}


def divider() -> dict[str, Any]:
    return {"type": "divider"}


def button(
    text: str, action_id: str, *, value: str | None = None, style: str | None = None
) -> dict[str, Any]:
    element: dict[str, Any] = {
        "type": "button",
        "text": {"type": "plain_text", "text": text},
        "action_id": action_id,
    }
    if value is not None:
        element["value"] = value
    if style:
        element["style"] = style
    return element


def actions(*elements: dict[str, Any]) -> dict[str, Any]:
    return {"type": "actions", "elements": list(elements)}


# -- button round trip --------------------------------------------------------


def intent_for_action(action_id: str, value: str | None = None) -> Optional[Intent]:
    """Pre-resolved intent for a pressed button, or None for unknown ids."""
    if action_id == END_FOCUS:
        return Intent.end_focus(value or None, source="interactive")
    if action_id == TAKE_BREAK:
        return Intent.break_(source="interactive", accept=True, suggestion_id=value or None)
    if action_id == TAKE_BREAK_OVERRIDE:
        return Intent.break_(value or None, source="interactive", override=True)
    if action_id == DEFER_BREAK:
        return Intent.break_(source="interactive", defer=True, suggestion_id=value or None)
    if action_id == START_FOCUS_25:
        return Intent.focus(25, source="interactive")
    if action_id == START_FOCUS_45:
        return Intent.focus(45, source="interactive")
    if action_id == SUGGEST_BREAK_COFFEE:
        return Intent.break_("hydration", source="interactive")
    if action_id == SUGGEST_BREAK_STRETCH:
        return Intent.break_("stretch", source="interactive")
    if action_id == SHOW_PRODUCTIVITY:
        return Intent.productivity(source="interactive")
    return None


# -- formatting ----------------------------------------------------------------


def format_clock(moment: datetime, tz_name: str | None) -> str:
    local = moment.astimezone(resolve_timezone(tz_name))
    suffix = "AM" if local.hour < 12 else "PM"
    return f"{local.hour % 12 or 12}:{local.minute:02d} {suffix}"


def format_minutes(total: int) -> str:
    return f"{total // 60}h {total % 60}m"


def break_message(break_type: str | None) -> str:
    return BREAK_MESSAGES.get((break_type or "").lower(), BREAK_MESSAGES["general"])


# -- focus ---------------------------------------------------------------------


def end_focus_button(session_id: str) -> dict[str, Any]:
    return button("End Focus Session", END_FOCUS, value=session_id, style="danger")


def focus_started(session: FocusSessionRecord, tz_name: str | None) -> Response:
    text = (
        f"🎯 *Focus mode activated!*\nDuration: {session.duration} minutes\n"
        f"🕐 Ends at: {format_clock(session.scheduled_end, tz_name)}\n\n"
        "⚡ Setting up your Slack status automatically..."
    )
    return Response(
        text=f"🎯 Focus mode activated for {session.duration} minutes",
        blocks=[section(text), actions(end_focus_button(session.id))],
    )


def focus_already_active(session: FocusSessionRecord | None) -> Response:
    text = "You already have an active focus session. End it first with `/focus end`."
    blocks = [section(text)]
    if session is not None:
        blocks.append(actions(end_focus_button(session.id)))
    return Response(text=text, blocks=blocks)


def focus_ended(*, replace_original: bool = False) -> Response:
    text = (
        "✅ *Focus session ended!*\n\nGreat work! You've completed your focus session.\n\n"
        "🔄 Your Slack status is being cleared automatically.\n\n"
        "Time to take a well-deserved break! 🎉"
    )
    return Response(
        text="✅ Focus session ended!", blocks=[section(text)], replace_original=replace_original
    )


def focus_not_active(*, replace_original: bool = False) -> Response:
    return Response(
        text="❌ No active focus session found.", replace_original=replace_original
    )


# -- breaks --------------------------------------------------------------------


def break_rejected(request: BreakRequest) -> Response:
    text = (
        f"⏰ *Break timing suggestion*\n\n{request.decision.reason}. Maybe try taking a "
        "break after your meeting ends?\n\n💡 *Quick tip:* You can still take a "
        "micro-break (stretch, deep breaths) even during busy times!"
    )
    return Response(
        text=f"⏰ {request.decision.reason}",
        blocks=[
            section(text),
            actions(
                button(
                    "Take Break Anyway",
                    TAKE_BREAK_OVERRIDE,
                    value=request.break_type,
                    style="primary",
                )
            ),
        ],
    )


def break_approved(request: BreakRequest) -> Response:
    suggestion_id = request.suggestion.id if request.suggestion else ""
    text = (
        f"☕ *Break time!*\n{break_message(request.break_type)}\n\n"
        f"✨ *Perfect timing:* {request.decision.reason}"
    )
    return Response(
        text=f"☕ Break time! {request.decision.reason}",
        blocks=[
            section(text),
            actions(
                button("Take Break Now", TAKE_BREAK, value=suggestion_id, style="primary"),
                button("Maybe Later", DEFER_BREAK, value=suggestion_id),
            ),
        ],
    )


def break_accepted(acceptance: BreakAcceptance) -> Response:
    text = (
        f"☕ *Break time started!*\n\nEnjoy your {acceptance.minutes}-minute coffee break! "
        "✅ Your Slack status is being updated.\n\n💡 *Break Tips:*\n"
        "• Step away from your desk\n• Hydrate and stretch\n"
        "• Get some fresh air if possible\n• Let your mind rest"
    )
    return Response(text="☕ Break time started!", blocks=[section(text)], replace_original=True)


def break_already_accepted() -> Response:
    return Response(text="☕ This break is already underway. Enjoy it!", replace_original=True)


def break_not_found() -> Response:
    return Response(
        text="❌ That break suggestion is no longer available. Try `/break` again.",
        replace_original=True,
    )


def break_forced(acceptance: BreakAcceptance) -> Response:
    text = (
        "☕ *Quick break time!*\n\nYou chose to take a break anyway - good for you! "
        f"Taking a {acceptance.minutes}-minute break even during busy times.\n\n"
        "💡 *Quick break tips:*\n• Do some desk stretches\n• Take a few deep breaths\n"
        "• Step outside for fresh air\n• Stay hydrated"
    )
    return Response(text="☕ Quick break time!", blocks=[section(text)], replace_original=True)


def break_deferred() -> Response:
    text = (
        "👍 *No problem!*\n\nI understand you're in the zone right now. Remember that "
        "regular breaks help maintain focus and prevent burnout.\n\n⏰ Consider taking a "
        "break within the next 30-60 minutes.\n\n"
        "💫 _Tip: Use `/break` anytime you're ready for a wellness break!_"
    )
    return Response(text="👍 No problem!", blocks=[section(text)], replace_original=True)


# -- productivity ----------------------------------------------------------------

_MEETING_STATE_LABELS = {
    "in_progress": "🔴 *In progress*",
    "completed": "✅ *Completed*",
    "starting_soon": "🟡 *Starting soon*",
    "upcoming": "⏰ *Upcoming*",
}


def productivity_summary(summary: ProductivitySummary) -> Response:
    blocks: list[dict[str, Any]] = [header("📊 Your Productivity Summary")]
    if summary.today:
        lines = [
            f"{_MEETING_STATE_LABELS[line.state]} "
            f"{format_clock(line.start_time, summary.timezone)}-"
            f"{format_clock(line.end_time, summary.timezone)}: {line.title}"
            for line in summary.today
        ]
        blocks.append(section("📅 *Today's Meetings*\n" + "\n".join(lines)))
        blocks.append(divider())
    elif not summary.has_meetings:
        blocks.append(
            section(
                "📅 *No meetings found*\n\nConnect your calendar to see how meetings "
                "shape your focus time."
            )
        )
        blocks.append(divider())

    blocks.append(
        fields_section(
            [
                f"*Meeting Time (7 days):*\n{format_minutes(summary.meeting_minutes)}",
                f"*Focus Time:*\n{format_minutes(summary.focus_minutes)}",
                f"*Total Meetings:*\n{summary.meeting_count} meetings",
                f"*Breaks Taken:*\n{summary.breaks_accepted} breaks",
                f"*Focus Sessions:*\n{summary.sessions_completed}/{summary.sessions_started} completed",
                f"*Back-to-back Meetings:*\n{summary.back_to_back_meetings}",
            ]
        )
    )
    if summary.insights:
        blocks.append(divider())
        blocks.append(
            section(
                "💡 *Productivity Insights*\n"
                + "\n".join(f"• {insight}" for insight in summary.insights)
            )
        )
    return Response(text="📊 Your Productivity Summary", blocks=blocks)


# -- conversational --------------------------------------------------------------


def conversational(
    message: str, recommendations: tuple[str, ...] | list[str] = ()
) -> Response:
    blocks = [section(message)]
    if recommendations:
        blocks.append(divider())
        blocks.append(
            section("💡 *Recommendations:*\n" + "\n".join(f"• {r}" for r in recommendations))
        )
    return Response(text=message, blocks=blocks)


def greeting(message: str | None = None) -> Response:
    return conversational(
        message or FALLBACK_REPLIES[IntentAction.GREETING],
        RECOMMENDATIONS[IntentAction.GREETING],
    )


def unsupported(hint: str | None = None) -> Response:
    """Polite refusal, with quick actions when the text hinted at a feature."""
    if hint == "focus":
        return Response(
            text=UNSUPPORTED_TEXT,
            blocks=[
                section(UNSUPPORTED_TEXT),
                section("🎯 *Focus Session Options*"),
                actions(
                    button("25 min Focus", START_FOCUS_25, style="primary"),
                    button("45 min Focus", START_FOCUS_45),
                ),
            ],
        )
    if hint == "break":
        return Response(
            text=UNSUPPORTED_TEXT,
            blocks=[
                section(UNSUPPORTED_TEXT),
                section("☕ *Break Options*"),
                actions(
                    button("Coffee Break", SUGGEST_BREAK_COFFEE),
                    button("Stretch Break", SUGGEST_BREAK_STRETCH),
                ),
            ],
        )
    if hint == "productivity":
        return Response(
            text=UNSUPPORTED_TEXT,
            blocks=[
                section(UNSUPPORTED_TEXT),
                section("📊 *Productivity Dashboard*"),
                actions(button("View Productivity", SHOW_PRODUCTIVITY)),
            ],
        )
    if hint == "help":
        return help_response()
    return Response(text=UNSUPPORTED_TEXT, blocks=[section(UNSUPPORTED_TEXT)])


def help_response() -> Response:
    return Response(
        text="👋 Hi! I'm your productivity assistant. Here's what I can help you with:",
        blocks=[
            section("👋 *Hi! I'm your productivity assistant!*\n\nI can help you with:"),
            fields_section(
                [
                    "*🎯 Focus Sessions*\nStart timed focus sessions with automatic Slack status updates",
                    "*☕ Smart Breaks*\nGet break suggestions that respect your calendar",
                    "*📊 Productivity Metrics*\nTrack your meeting time, focus patterns, and work habits",
                    "*🤖 Natural Language*\nJust tell me what you need in plain English!",
                ]
            ),
            section(
                "*Slash Commands:*\n• `/focus` - Start focus sessions\n"
                "• `/break` - Get break suggestions\n• `/productivity` - View your metrics"
            ),
        ],
    )


# -- degraded paths --------------------------------------------------------------


def provisional(intent: Intent) -> Response:
    """Immediate answer when the real work overran its time budget."""
    if intent.action is IntentAction.FOCUS and not intent.parameters.end:
        duration = intent.parameters.duration
        text = (
            f"🎯 *Focus Mode Activated!*\nDuration: {duration} minutes\n\n"
            "📝 *Quick Focus Tips:*\n• Close unnecessary tabs and apps\n"
            "• Put phone in silent mode\n• Set clear goals for this session\n\n"
            "⏰ Timer started! You're now in focus mode."
        )
        return Response(
            text=f"🎯 Focus Mode Activated! Duration: {duration} minutes",
            blocks=[
                section(text),
                context(
                    "💡 _Working in offline mode - your session data will sync when connected._"
                ),
            ],
        )
    if intent.action is IntentAction.FOCUS:
        return Response(text="⏳ Ending your focus session... I'll confirm in a DM.")
    if intent.action is IntentAction.BREAK:
        kind = intent.parameters.break_type or "general"
        return Response(text=f"☕ Your {kind} break suggestion is being prepared!")
    if intent.action is IntentAction.PRODUCTIVITY:
        return Response(text="📊 Your productivity summary is being generated...")
    return Response(text=PROVISIONAL_ACK_TEXT)


def apology(intent: Intent | None) -> Response:
    if intent is None:
        return Response(text=_GENERIC_APOLOGY)
    if intent.is_end:
        return Response(text=_END_FOCUS_APOLOGY)
    return Response(text=_APOLOGIES.get(intent.action, _GENERIC_APOLOGY))


__all__ = [
    "ACTION_IDS",
    "BREAK_MESSAGES",
    "DEFER_BREAK",
    "END_FOCUS",
    "FALLBACK_REPLIES",
    "PROVISIONAL_ACK_TEXT",
    "RECOMMENDATIONS",
    "Response",
    "SHOW_PRODUCTIVITY",
    "START_FOCUS_25",
    "START_FOCUS_45",
    "SUGGEST_BREAK_COFFEE",
    "SUGGEST_BREAK_STRETCH",
    "TAKE_BREAK",
    "TAKE_BREAK_OVERRIDE",
    "UNSUPPORTED_TEXT",
    "apology",
    "break_message",
    "conversational",
    "format_clock",
    "greeting",
    "help_response",
    "intent_for_action",
    "productivity_summary",
    "provisional",
    "unsupported",
]
