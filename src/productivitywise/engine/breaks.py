"""Meeting-aware break timing and the break suggestion lifecycle."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Sequence

from productivitywise.core.clock import Clock, as_utc, utc_now
from productivitywise.storage import (
    BreakSuggestionPatch,
    BreakSuggestionRecord,
    MeetingRecord,
    SessionStore,
    UserRecord,
)

from .executor import TimeoutBoundedExecutor
from .intents import BREAK_TYPES, DEFAULT_BREAK_TYPE
from .meetings import MeetingOracle
from .ports import StatusNotifier
from .sessions import SessionStateMachine

logger = logging.getLogger(__name__)

# Minutes before a meeting during which a break is not worth starting.
TOO_CLOSE_MINUTES = 10
# Upper bound of the "fits nicely before the meeting" window.
GOOD_WINDOW_MINUTES = 30

IN_MEETING_REASON = "Currently in a meeting"
NO_MEETINGS_REASON = "No meetings scheduled soon"
OVERRIDE_REASON = "Override: calendar conflict"

BREAK_STATUS_TEXT = "On a coffee break"
BREAK_STATUS_EMOJI = ":coffee:"


@dataclass(frozen=True)
class BreakDecision:
    approve: bool
    reason: str
    minutes_until_next_meeting: Optional[int] = None
    override: bool = False


def decide(meetings: Sequence[MeetingRecord], now: datetime) -> BreakDecision:
    """Pure break-timing rule over one day's meetings.

    Meeting intervals are closed-open: the instant a meeting ends is free,
    the instant it starts is not.
    """
    now = as_utc(now)
    for meeting in meetings:
        if meeting.contains(now):
            return BreakDecision(approve=False, reason=IN_MEETING_REASON)

    upcoming = [m.start_time for m in meetings if m.start_time > now]
    if not upcoming:
        return BreakDecision(approve=True, reason=NO_MEETINGS_REASON)

    minutes = int((min(upcoming) - now).total_seconds() // 60)
    if minutes <= TOO_CLOSE_MINUTES:
        return BreakDecision(
            approve=False,
            reason=f"Next meeting in {minutes} minutes",
            minutes_until_next_meeting=minutes,
        )
    if minutes <= GOOD_WINDOW_MINUTES:
        return BreakDecision(
            approve=True,
            reason=f"Perfect timing! {minutes} minutes until your next meeting",
            minutes_until_next_meeting=minutes,
        )
    return BreakDecision(
        approve=True, reason=NO_MEETINGS_REASON, minutes_until_next_meeting=minutes
    )


class BreakDecisionEngine:
    def __init__(self, oracle: MeetingOracle, *, now: Clock = utc_now) -> None:
        self._oracle = oracle
        self._now = now

    async def evaluate(
        self, user_id: str, now: datetime | None = None, tz: str | None = None
    ) -> BreakDecision:
        now = as_utc(now) if now else self._now()
        meetings = await self._oracle.meetings_for_day(user_id, now, tz)
        decision = decide(meetings, now)
        logger.debug(
            "Break decision for %s: approve=%s reason=%s",
            user_id,
            decision.approve,
            decision.reason,
        )
        return decision

    @staticmethod
    def override() -> BreakDecision:
        return BreakDecision(approve=True, reason=OVERRIDE_REASON, override=True)


def normalize_break_type(value: str | None) -> str:
    name = (value or "").strip().lower()
    return name if name in BREAK_TYPES else DEFAULT_BREAK_TYPE


@dataclass(frozen=True)
class BreakRequest:
    break_type: str
    decision: BreakDecision
    suggestion: Optional[BreakSuggestionRecord] = None


class AcceptKind(str, Enum):
    ACCEPTED = "accepted"
    ALREADY_ACCEPTED = "already_accepted"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class BreakAcceptance:
    kind: AcceptKind
    suggestion: Optional[BreakSuggestionRecord] = None
    minutes: int = 0


class BreakService:
    """Requests, accepts, defers and force-starts breaks for one user at a time."""

    def __init__(
        self,
        engine: BreakDecisionEngine,
        store: SessionStore,
        executor: TimeoutBoundedExecutor,
        notifier: StatusNotifier,
        *,
        break_minutes: int = 20,
        override_minutes: int = 15,
        sessions: SessionStateMachine | None = None,
        now: Clock = utc_now,
    ) -> None:
        self._engine = engine
        self._store = store
        self._executor = executor
        self._notifier = notifier
        self._break_minutes = break_minutes
        self._override_minutes = override_minutes
        self._sessions = sessions
        self._now = now

    async def request(
        self, user: UserRecord, break_type: str | None = None, now: datetime | None = None
    ) -> BreakRequest:
        now = as_utc(now) if now else self._now()
        kind = normalize_break_type(break_type)
        decision = await self._engine.evaluate(user.id, now, user.timezone)
        if not decision.approve:
            return BreakRequest(break_type=kind, decision=decision)

        suggestion = await self._store.create_suggestion(
            user_id=user.id,
            type=kind,
            message=f"You requested a {kind} break",
            reason=decision.reason,
            suggested_at=now,
        )
        self._log(user.id, "break_suggested", {"suggestion_id": suggestion.id, "type": kind})
        return BreakRequest(break_type=kind, decision=decision, suggestion=suggestion)

    async def accept(
        self, suggestion_id: str, user: UserRecord, now: datetime | None = None
    ) -> BreakAcceptance:
        now = as_utc(now) if now else self._now()
        suggestion = await self._store.get_suggestion(suggestion_id)
        if suggestion is None or suggestion.user_id != user.id:
            return BreakAcceptance(AcceptKind.NOT_FOUND)
        updated = await self._store.update_suggestion(
            suggestion_id,
            BreakSuggestionPatch(accepted=True, accepted_at=now),
            only_if_unaccepted=True,
        )
        if updated is None:
            return BreakAcceptance(AcceptKind.ALREADY_ACCEPTED, suggestion)

        await self._start_break(user, now, self._break_minutes)
        self._log(
            user.id,
            "break_accepted",
            {"suggestion_id": suggestion_id, "duration": self._break_minutes},
        )
        return BreakAcceptance(AcceptKind.ACCEPTED, updated, self._break_minutes)

    async def defer(self, suggestion_id: str | None, user: UserRecord) -> None:
        self._log(
            user.id,
            "break_deferred",
            {"suggestion_id": suggestion_id, "reason": "maybe_later"},
        )

    async def force(
        self, user: UserRecord, now: datetime | None = None, break_type: str | None = None
    ) -> BreakAcceptance:
        """Start a short break regardless of the calendar."""
        now = as_utc(now) if now else self._now()
        kind = normalize_break_type(break_type)
        decision = self._engine.override()
        suggestion = await self._store.create_suggestion(
            user_id=user.id,
            type=kind,
            message=f"You requested a {kind} break",
            reason=decision.reason,
            suggested_at=now,
            accepted_at=now,
        )
        await self._start_break(user, now, self._override_minutes)
        self._log(
            user.id,
            "break_forced",
            {
                "suggestion_id": suggestion.id,
                "duration": self._override_minutes,
                "reason": "override_calendar_conflict",
            },
        )
        return BreakAcceptance(AcceptKind.ACCEPTED, suggestion, self._override_minutes)

    async def _start_break(self, user: UserRecord, now: datetime, minutes: int) -> None:
        if self._sessions is not None:
            # A break ends any running focus session early.
            await self._sessions.interrupt(user, now, reason="break_started")
        expires_at = now + timedelta(minutes=minutes)
        self._executor.submit(
            user.id,
            lambda: self._notifier.set_status(
                user, BREAK_STATUS_TEXT, BREAK_STATUS_EMOJI, expires_at
            ),
            label="break_status_set",
        )

    def _log(self, user_id: str, action: str, details: dict) -> None:
        self._executor.submit(
            user_id,
            lambda: self._store.log_activity(user_id=user_id, action=action, details=details),
            label="activity_log",
        )


__all__ = [
    "AcceptKind",
    "BREAK_STATUS_EMOJI",
    "BREAK_STATUS_TEXT",
    "BreakAcceptance",
    "BreakDecision",
    "BreakDecisionEngine",
    "BreakRequest",
    "BreakService",
    "IN_MEETING_REASON",
    "NO_MEETINGS_REASON",
    "OVERRIDE_REASON",
    "decide",
    "normalize_break_type",
]
