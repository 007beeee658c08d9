"""Intent vocabulary shared by the classifier, dispatcher and Slack handlers."""

from __future__ import annotations

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field

BREAK_TYPES: tuple[str, ...] = ("general", "hydration", "stretch", "meditation", "walk")
DEFAULT_BREAK_TYPE = "general"
DEFAULT_FOCUS_MINUTES = 25


class IntentAction(str, Enum):
    GREETING = "greeting"
    FOCUS = "focus"
    BREAK = "break"
    PRODUCTIVITY = "productivity"
    UNSUPPORTED = "unsupported"


class CommandKind(str, Enum):
    """Slash commands the app registers."""

    FOCUS = "/focus"
    BREAK = "/break"
    PRODUCTIVITY = "/productivity"

    @classmethod
    def parse(cls, value: str | "CommandKind" | None) -> Optional["CommandKind"]:
        if value is None or isinstance(value, CommandKind):
            return value
        name = value.strip().lower()
        if not name.startswith("/"):
            name = f"/{name}"
        try:
            return cls(name)
        except ValueError:
            return None


IntentSource = Literal["fast", "slow", "interactive"]


class IntentParameters(BaseModel):
    duration: Optional[int] = Field(default=None, ge=1, le=24 * 60)
    end: bool = False
    break_type: Optional[str] = None
    # Interactive payloads carry the record they target.
    session_id: Optional[str] = None
    suggestion_id: Optional[str] = None
    override: bool = False
    accept: bool = False
    defer: bool = False


class Intent(BaseModel):
    """What the user wants, regardless of which surface they asked through."""

    action: IntentAction
    parameters: IntentParameters = Field(default_factory=IntentParameters)
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    source: IntentSource = "fast"

    @classmethod
    def unsupported(cls, *, source: IntentSource = "slow") -> "Intent":
        return cls(action=IntentAction.UNSUPPORTED, confidence=0.0, source=source)

    @classmethod
    def focus(
        cls, duration: int | None = None, *, source: IntentSource = "fast", **extra
    ) -> "Intent":
        return cls(
            action=IntentAction.FOCUS,
            parameters=IntentParameters(duration=duration or DEFAULT_FOCUS_MINUTES, **extra),
            source=source,
        )

    @classmethod
    def end_focus(
        cls, session_id: str | None = None, *, source: IntentSource = "fast"
    ) -> "Intent":
        return cls(
            action=IntentAction.FOCUS,
            parameters=IntentParameters(end=True, session_id=session_id),
            source=source,
        )

    @classmethod
    def break_(
        cls, break_type: str | None = None, *, source: IntentSource = "fast", **extra
    ) -> "Intent":
        return cls(
            action=IntentAction.BREAK,
            parameters=IntentParameters(break_type=break_type or DEFAULT_BREAK_TYPE, **extra),
            source=source,
        )

    @classmethod
    def productivity(cls, *, source: IntentSource = "fast") -> "Intent":
        return cls(action=IntentAction.PRODUCTIVITY, source=source)

    @property
    def is_end(self) -> bool:
        return self.action is IntentAction.FOCUS and self.parameters.end


__all__ = [
    "BREAK_TYPES",
    "CommandKind",
    "DEFAULT_BREAK_TYPE",
    "DEFAULT_FOCUS_MINUTES",
    "Intent",
    "IntentAction",
    "IntentParameters",
    "IntentSource",
]
