from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Sequence

from productivitywise.core.clock import Clock, as_utc, utc_now
from productivitywise.storage import MeetingRecord, SessionStore, UserRecord

from .meetings import MeetingOracle, local_day_bounds, resolve_timezone

logger = logging.getLogger(__name__)

SUMMARY_WINDOW = timedelta(days=7)
BACK_TO_BACK_GAP = timedelta(minutes=5)
HEAVY_MEETING_MINUTES = 20 * 60
BACK_TO_BACK_INSIGHT_THRESHOLD = 3
STARTING_SOON = timedelta(minutes=15)


@dataclass(frozen=True)
class MeetingLine:
    title: str
    start_time: datetime
    end_time: datetime
    state: str  # in_progress | completed | starting_soon | upcoming


@dataclass(frozen=True)
class ProductivitySummary:
    window_start: datetime
    window_end: datetime
    timezone: str
    meeting_minutes: int
    meeting_count: int
    back_to_back_meetings: int
    focus_minutes: int
    sessions_started: int
    sessions_completed: int
    breaks_suggested: int
    breaks_accepted: int
    today: list[MeetingLine] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)

    @property
    def has_meetings(self) -> bool:
        return self.meeting_count > 0 or bool(self.today)


def count_back_to_back(meetings: Sequence[MeetingRecord]) -> int:
    ordered = sorted(meetings, key=lambda m: m.start_time)
    return sum(
        1
        for prev, nxt in zip(ordered, ordered[1:])
        if nxt.start_time - prev.end_time <= BACK_TO_BACK_GAP
    )


def meeting_state(meeting: MeetingRecord, now: datetime) -> str:
    if meeting.contains(now):
        return "in_progress"
    if now >= meeting.end_time:
        return "completed"
    if meeting.start_time - now <= STARTING_SOON:
        return "starting_soon"
    return "upcoming"


def weekly_insights(meetings: Sequence[MeetingRecord], tz_name: str | None) -> list[str]:
    if not meetings:
        return []
    insights: list[str] = []
    total = sum(m.duration_minutes for m in meetings)
    if total > HEAVY_MEETING_MINUTES:
        insights.append(
            "You're spending a lot of time in meetings. Consider if all meetings are necessary."
        )
    back_to_back = count_back_to_back(meetings)
    if back_to_back > BACK_TO_BACK_INSIGHT_THRESHOLD:
        insights.append(
            f"You had {back_to_back} back-to-back meetings this week. "
            "Try scheduling buffer time between meetings."
        )
    tz = resolve_timezone(tz_name)
    hours = Counter(m.start_time.astimezone(tz).hour for m in meetings)
    peak_hour, _ = hours.most_common(1)[0]
    insights.append(
        f"Your peak meeting time is {peak_hour}:00. Consider blocking focus time before or after."
    )
    return insights


class ProductivityService:
    def __init__(
        self, store: SessionStore, oracle: MeetingOracle, *, now: Clock = utc_now
    ) -> None:
        self._store = store
        self._oracle = oracle
        self._now = now

    async def summarize(
        self, user: UserRecord, now: datetime | None = None
    ) -> ProductivitySummary:
        """Trailing seven-day totals plus today's agenda in the user's timezone."""
        now = as_utc(now) if now else self._now()
        window_start = now - SUMMARY_WINDOW

        meetings = await self._oracle.meetings_between(user.id, window_start, now)
        sessions = await self._store.list_sessions(user_id=user.id, start=window_start, end=now)
        suggestions = await self._store.list_suggestions(
            user_id=user.id, start=window_start, end=now
        )
        day_start, day_end = local_day_bounds(now, user.timezone)
        todays = await self._oracle.meetings_between(user.id, day_start, day_end)

        completed = [s for s in sessions if s.status == "completed"]
        summary = ProductivitySummary(
            window_start=window_start,
            window_end=now,
            timezone=user.timezone,
            meeting_minutes=sum(m.duration_minutes for m in meetings),
            meeting_count=len(meetings),
            back_to_back_meetings=count_back_to_back(meetings),
            focus_minutes=sum(s.duration for s in completed),
            sessions_started=len(sessions),
            sessions_completed=len(completed),
            breaks_suggested=len(suggestions),
            breaks_accepted=sum(1 for s in suggestions if s.accepted),
            today=[
                MeetingLine(
                    title=m.title or "Untitled Meeting",
                    start_time=m.start_time,
                    end_time=m.end_time,
                    state=meeting_state(m, now),
                )
                for m in todays
            ],
            insights=weekly_insights(meetings, user.timezone),
        )
        logger.debug(
            "Summary for %s: %s meetings, %s focus minutes",
            user.id,
            summary.meeting_count,
            summary.focus_minutes,
        )
        return summary


__all__ = [
    "MeetingLine",
    "ProductivityService",
    "ProductivitySummary",
    "count_back_to_back",
    "meeting_state",
    "weekly_insights",
]
