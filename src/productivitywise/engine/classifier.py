"""Map free text and slash-command arguments onto an ``Intent``.

Short, well-known inputs ("25", "end", "stretch") resolve locally. Anything
else goes to the text generator, whose reply must be a single JSON object;
every failure along that path degrades to ``unsupported``.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from pydantic import ValidationError

from productivitywise.core.logging_config import record_error
from productivitywise.llm.generator import TextGenerator, prompt

from .intents import (
    BREAK_TYPES,
    DEFAULT_BREAK_TYPE,
    DEFAULT_FOCUS_MINUTES,
    CommandKind,
    Intent,
    IntentAction,
    IntentParameters,
)

logger = logging.getLogger(__name__)

_DIGITS_RE = re.compile(r"^\d+$")
_END_RE = re.compile(r"^(end|stop)$", re.IGNORECASE)
_BREAK_TYPE_RE = re.compile(r"^(" + "|".join(BREAK_TYPES) + r")$", re.IGNORECASE)
_MENTION_RE = re.compile(r"<@[^>]+>")

MAX_FOCUS_MINUTES = 8 * 60

COMMAND_PHRASES: dict[CommandKind, str] = {
    CommandKind.FOCUS: "start a focus session",
    CommandKind.BREAK: "suggest a break",
    CommandKind.PRODUCTIVITY: "show my productivity metrics",
}

INTENT_SYSTEM_PROMPT = """
You are a productivity assistant that interprets user requests and maps them to specific Slack commands.

Available actions
1. greeting: greetings and introductions ("hi", "hello", "good morning", "how are you")
2. focus: start or end a focus session, duration in minutes ("start focus for 30 minutes", "end my focus session", "I need to concentrate")
3. break: suggest a break of type general, hydration, stretch, meditation or walk ("I need a coffee break", "time for a stretch")
4. productivity: productivity metrics and summaries ("how productive was I today?", "meeting summary")
5. unsupported: anything unrelated to these features ("what's the weather?", "tell me a joke", "book a meeting")

Respond ONLY with a JSON object in this exact format:
{"action": "greeting|focus|break|productivity|unsupported", "parameters": {"duration": 25, "breakType": "general", "end": false}, "confidence": 0.95}

Rules
- Set "end": true only when the user wants to stop a running focus session.
- Default focus duration is 25 minutes; default break type is "general".
- Confidence should be 0.8+ for supported actions, lower for unsupported.
""".strip()

_HINT_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("focus", ("focus", "concentrate")),
    ("break", ("break", "rest")),
    ("productivity", ("productivity", "metrics", "summary")),
    ("help", ("help", "commands")),
)


def clean_text(text: str | None) -> str:
    """Strip bot mentions and surrounding whitespace."""
    return _MENTION_RE.sub("", text or "").strip()


def fast_classify(
    text: str | None,
    command: CommandKind | str | None = None,
    *,
    default_minutes: int = DEFAULT_FOCUS_MINUTES,
) -> Optional[Intent]:
    """Resolve ``text`` without the text generator, or return None."""
    kind = CommandKind.parse(command)
    stripped = clean_text(text)

    if not stripped:
        if kind is CommandKind.FOCUS:
            return Intent.focus(default_minutes)
        if kind is CommandKind.BREAK:
            return Intent.break_(DEFAULT_BREAK_TYPE)
        if kind is CommandKind.PRODUCTIVITY:
            return Intent.productivity()
        return Intent.unsupported(source="fast")

    # "end" only stops focus under /focus or in free text
    ends_focus = kind in (None, CommandKind.FOCUS) and bool(_END_RE.match(stripped))
    simple = ends_focus or bool(_DIGITS_RE.match(stripped) or _BREAK_TYPE_RE.match(stripped))
    if not simple:
        return None

    if kind is CommandKind.PRODUCTIVITY:
        return Intent.productivity()
    if _DIGITS_RE.match(stripped):
        if kind is CommandKind.BREAK:
            return Intent.break_(DEFAULT_BREAK_TYPE)
        return Intent.focus(_coerce_duration(stripped, default_minutes))
    if ends_focus:
        return Intent.end_focus()
    return Intent.break_(stripped.lower())


def is_fast(text: str | None, command: CommandKind | str | None = None) -> bool:
    return fast_classify(text, command) is not None


def keyword_hint(text: str | None) -> Optional[str]:
    """Coarse topic of ``text`` for suggesting buttons; never used to act."""
    lowered = clean_text(text).lower()
    for topic, needles in _HINT_KEYWORDS:
        if any(needle in lowered for needle in needles):
            return topic
    return None


def parse_intent_reply(
    reply: str, *, threshold: float, default_minutes: int = DEFAULT_FOCUS_MINUTES
) -> Intent:
    """Turn a raw generator reply into an ``Intent``.

    The first well-formed JSON object in ``reply`` is used. Malformed,
    incomplete or low-confidence replies become ``unsupported``.
    """
    payload = _first_json_object(reply)
    if payload is None:
        logger.info("Intent reply carried no JSON object")
        return Intent.unsupported()

    action_raw = payload.get("action")
    confidence = payload.get("confidence")
    if not isinstance(action_raw, str) or isinstance(confidence, bool) or not isinstance(
        confidence, (int, float)
    ):
        logger.info("Intent reply missing action/confidence: %s", payload)
        return Intent.unsupported()
    try:
        action = IntentAction(action_raw.strip().lower())
    except ValueError:
        logger.info("Intent reply has unknown action %r", action_raw)
        return Intent.unsupported()

    confidence = min(max(float(confidence), 0.0), 1.0)
    if action is IntentAction.UNSUPPORTED or confidence < threshold:
        return Intent(action=IntentAction.UNSUPPORTED, confidence=confidence, source="slow")

    raw_params = payload.get("parameters")
    params = raw_params if isinstance(raw_params, dict) else {}
    try:
        parameters = _parameters_for(action, params, default_minutes)
        return Intent(action=action, parameters=parameters, confidence=confidence, source="slow")
    except ValidationError:
        logger.info("Intent reply parameters failed validation: %s", params)
        return Intent.unsupported()


class IntentClassifier:
    """Classifier with a local fast path and a generator-backed slow path."""

    def __init__(
        self,
        generator: TextGenerator | None,
        *,
        confidence_threshold: float = 0.7,
        default_focus_minutes: int = DEFAULT_FOCUS_MINUTES,
    ) -> None:
        self._generator = generator
        self._threshold = confidence_threshold
        self._default_minutes = default_focus_minutes

    @property
    def confidence_threshold(self) -> float:
        return self._threshold

    def is_fast(self, text: str | None, command: CommandKind | str | None = None) -> bool:
        return fast_classify(text, command, default_minutes=self._default_minutes) is not None

    async def classify(
        self, text: str | None, command: CommandKind | str | None = None
    ) -> Intent:
        fast = fast_classify(text, command, default_minutes=self._default_minutes)
        if fast is not None:
            return fast
        if self._generator is None:
            logger.info("No text generator configured; free text is unsupported")
            return Intent.unsupported()

        kind = CommandKind.parse(command)
        user_text = clean_text(text)
        if kind is not None:
            user_text = f"{COMMAND_PHRASES[kind]} {user_text}"
        try:
            reply = await self._generator.complete(prompt(INTENT_SYSTEM_PROMPT, user_text))
        except Exception as exc:
            logger.warning("Intent generation failed: %s", exc)
            record_error(component="classifier", error_type=type(exc).__name__)
            return Intent.unsupported()
        return parse_intent_reply(
            reply, threshold=self._threshold, default_minutes=self._default_minutes
        )


def _first_json_object(text: str) -> Optional[dict[str, Any]]:
    decoder = json.JSONDecoder()
    idx = text.find("{")
    while idx != -1:
        try:
            value, _ = decoder.raw_decode(text, idx)
        except ValueError:
            idx = text.find("{", idx + 1)
            continue
        if isinstance(value, dict):
            return value
        idx = text.find("{", idx + 1)
    return None


def _coerce_duration(value: Any, default: int = DEFAULT_FOCUS_MINUTES) -> int:
    try:
        minutes = int(value)
    except (TypeError, ValueError):
        return default
    if minutes <= 0:
        return default
    return min(minutes, MAX_FOCUS_MINUTES)


def _parameters_for(
    action: IntentAction, params: dict[str, Any], default_minutes: int
) -> IntentParameters:
    if action is IntentAction.FOCUS:
        end = params.get("end") is True
        if end:
            return IntentParameters(end=True)
        return IntentParameters(
            duration=_coerce_duration(params.get("duration"), default_minutes)
        )
    if action is IntentAction.BREAK:
        raw = params.get("breakType", params.get("break_type"))
        break_type = raw.strip().lower() if isinstance(raw, str) else DEFAULT_BREAK_TYPE
        if break_type not in BREAK_TYPES:
            break_type = DEFAULT_BREAK_TYPE
        return IntentParameters(break_type=break_type)
    return IntentParameters()


__all__ = [
    "COMMAND_PHRASES",
    "INTENT_SYSTEM_PROMPT",
    "IntentClassifier",
    "MAX_FOCUS_MINUTES",
    "clean_text",
    "fast_classify",
    "is_fast",
    "keyword_hint",
    "parse_intent_reply",
]
