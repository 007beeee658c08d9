"""Plain read-side payloads handed out by the store.

ORM rows never leave a database session; the engine only sees these frozen
values, with every timestamp as an aware UTC datetime.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional


@dataclass(frozen=True)
class UserRecord:
    id: str
    slack_user_id: str
    slack_team_id: str | None
    email: str
    name: str
    timezone: str


@dataclass(frozen=True)
class FocusSessionRecord:
    id: str
    user_id: str
    duration: int
    start_time: datetime
    end_time: datetime | None
    status: str
    notification_sent: bool

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @property
    def scheduled_end(self) -> datetime:
        return self.start_time + timedelta(minutes=self.duration)


@dataclass(frozen=True)
class BreakSuggestionRecord:
    id: str
    user_id: str
    type: str
    message: str
    reason: str | None
    accepted: bool
    suggested_at: datetime
    accepted_at: datetime | None


@dataclass(frozen=True)
class MeetingRecord:
    id: str
    user_id: str
    title: str | None
    start_time: datetime
    end_time: datetime

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)

    def contains(self, moment: datetime) -> bool:
        # Closed-open: the end instant is already free time.
        return self.start_time <= moment < self.end_time


@dataclass(frozen=True)
class FocusSessionPatch:
    status: Optional[str] = None
    end_time: Optional[datetime] = None
    notification_sent: Optional[bool] = None


@dataclass(frozen=True)
class BreakSuggestionPatch:
    accepted: Optional[bool] = None
    accepted_at: Optional[datetime] = None


__all__ = [
    "BreakSuggestionPatch",
    "BreakSuggestionRecord",
    "FocusSessionPatch",
    "FocusSessionRecord",
    "MeetingRecord",
    "UserRecord",
]
