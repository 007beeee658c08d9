from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime
from typing import Any, Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from productivitywise.core.clock import as_utc
from productivitywise.errors import ActiveSessionExists

from .models import (
    ActivityLog,
    Base,
    BreakSuggestion,
    FocusSession,
    FocusSessionStatus,
    Meeting,
    User,
)
from .records import (
    BreakSuggestionPatch,
    BreakSuggestionRecord,
    FocusSessionPatch,
    FocusSessionRecord,
    MeetingRecord,
    UserRecord,
)

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    """Persistence collaborator used by the engine."""

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        ...

    async def get_user_by_slack_id(self, slack_user_id: str) -> Optional[UserRecord]:
        ...

    async def create_user(
        self,
        *,
        slack_user_id: str,
        slack_team_id: str | None,
        name: str,
        email: str,
        timezone: str,
    ) -> UserRecord:
        ...

    async def get_active_session(self, user_id: str) -> Optional[FocusSessionRecord]:
        ...

    async def get_session(self, session_id: str) -> Optional[FocusSessionRecord]:
        ...

    async def create_session(
        self, *, user_id: str, duration: int, start_time: datetime
    ) -> FocusSessionRecord:
        ...

    async def update_session(
        self,
        session_id: str,
        patch: FocusSessionPatch,
        *,
        expected_status: str | None = None,
    ) -> Optional[FocusSessionRecord]:
        ...

    async def list_sessions(
        self, *, user_id: str, start: datetime, end: datetime
    ) -> list[FocusSessionRecord]:
        ...

    async def create_suggestion(
        self,
        *,
        user_id: str,
        type: str,
        message: str,
        reason: str | None,
        suggested_at: datetime,
        accepted_at: datetime | None = None,
    ) -> BreakSuggestionRecord:
        ...

    async def get_suggestion(self, suggestion_id: str) -> Optional[BreakSuggestionRecord]:
        ...

    async def update_suggestion(
        self,
        suggestion_id: str,
        patch: BreakSuggestionPatch,
        *,
        only_if_unaccepted: bool = False,
    ) -> Optional[BreakSuggestionRecord]:
        ...

    async def list_suggestions(
        self, *, user_id: str, start: datetime, end: datetime
    ) -> list[BreakSuggestionRecord]:
        ...

    async def get_meetings(
        self, *, user_id: str, start: datetime, end: datetime
    ) -> list[MeetingRecord]:
        ...

    async def log_activity(
        self, *, user_id: str | None, action: str, details: dict[str, Any] | None = None
    ) -> None:
        ...


class SqlAlchemySessionStore:
    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    # -- users ---------------------------------------------------------------

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        async with self._sessionmaker() as session:
            row = await session.get(User, user_id)
            return _user_payload(row) if row else None

    async def get_user_by_slack_id(self, slack_user_id: str) -> Optional[UserRecord]:
        async with self._sessionmaker() as session:
            result = await session.execute(
                select(User).where(User.slack_user_id == slack_user_id)
            )
            row = result.scalar_one_or_none()
            return _user_payload(row) if row else None

    async def create_user(
        self,
        *,
        slack_user_id: str,
        slack_team_id: str | None,
        name: str,
        email: str,
        timezone: str,
    ) -> UserRecord:
        """Insert a user; a concurrent insert for the same Slack id wins silently."""
        async with self._sessionmaker() as session:
            row = User(
                slack_user_id=slack_user_id,
                slack_team_id=slack_team_id,
                name=name,
                email=email,
                timezone=timezone,
            )
            session.add(row)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                result = await session.execute(
                    select(User).where(User.slack_user_id == slack_user_id)
                )
                return _user_payload(result.scalar_one())
            await session.refresh(row)
            return _user_payload(row)

    # -- focus sessions ------------------------------------------------------

    async def get_active_session(self, user_id: str) -> Optional[FocusSessionRecord]:
        async with self._sessionmaker() as session:
            result = await session.execute(
                select(FocusSession).where(
                    FocusSession.user_id == user_id,
                    FocusSession.status == FocusSessionStatus.ACTIVE.value,
                )
            )
            row = result.scalars().first()
            return _session_payload(row) if row else None

    async def get_session(self, session_id: str) -> Optional[FocusSessionRecord]:
        async with self._sessionmaker() as session:
            row = await session.get(FocusSession, session_id)
            return _session_payload(row) if row else None

    async def create_session(
        self, *, user_id: str, duration: int, start_time: datetime
    ) -> FocusSessionRecord:
        async with self._sessionmaker() as session:
            row = FocusSession(
                user_id=user_id,
                duration=duration,
                start_time=_to_db(start_time),
                status=FocusSessionStatus.ACTIVE.value,
                notification_sent=False,
            )
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ActiveSessionExists(user_id) from exc
            await session.refresh(row)
            return _session_payload(row)

    async def update_session(
        self,
        session_id: str,
        patch: FocusSessionPatch,
        *,
        expected_status: str | None = None,
    ) -> Optional[FocusSessionRecord]:
        """Apply ``patch``; with ``expected_status`` the write only lands if the
        row still has that status. Returns None when nothing was written."""
        values = _patch_values(patch)
        async with self._sessionmaker() as session:
            stmt = update(FocusSession).where(FocusSession.id == session_id)
            if expected_status is not None:
                stmt = stmt.where(FocusSession.status == expected_status)
            if values:
                result = await session.execute(
                    stmt.values(**values).execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    await session.rollback()
                    return None
                await session.commit()
            row = await session.get(FocusSession, session_id, populate_existing=True)
            return _session_payload(row) if row else None

    async def list_sessions(
        self, *, user_id: str, start: datetime, end: datetime
    ) -> list[FocusSessionRecord]:
        async with self._sessionmaker() as session:
            result = await session.execute(
                select(FocusSession)
                .where(
                    FocusSession.user_id == user_id,
                    FocusSession.start_time >= _to_db(start),
                    FocusSession.start_time < _to_db(end),
                )
                .order_by(FocusSession.start_time)
            )
            return [_session_payload(row) for row in result.scalars().all()]

    # -- break suggestions ---------------------------------------------------

    async def create_suggestion(
        self,
        *,
        user_id: str,
        type: str,
        message: str,
        reason: str | None,
        suggested_at: datetime,
        accepted_at: datetime | None = None,
    ) -> BreakSuggestionRecord:
        async with self._sessionmaker() as session:
            row = BreakSuggestion(
                user_id=user_id,
                type=type,
                message=message,
                reason=reason,
                suggested_at=_to_db(suggested_at),
                accepted=accepted_at is not None,
                accepted_at=_to_db(accepted_at) if accepted_at else None,
            )
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return _suggestion_payload(row)

    async def get_suggestion(self, suggestion_id: str) -> Optional[BreakSuggestionRecord]:
        async with self._sessionmaker() as session:
            row = await session.get(BreakSuggestion, suggestion_id)
            return _suggestion_payload(row) if row else None

    async def update_suggestion(
        self,
        suggestion_id: str,
        patch: BreakSuggestionPatch,
        *,
        only_if_unaccepted: bool = False,
    ) -> Optional[BreakSuggestionRecord]:
        values = _patch_values(patch)
        async with self._sessionmaker() as session:
            stmt = update(BreakSuggestion).where(BreakSuggestion.id == suggestion_id)
            if only_if_unaccepted:
                stmt = stmt.where(BreakSuggestion.accepted.is_(False))
            if values:
                result = await session.execute(
                    stmt.values(**values).execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    await session.rollback()
                    return None
                await session.commit()
            row = await session.get(BreakSuggestion, suggestion_id, populate_existing=True)
            return _suggestion_payload(row) if row else None

    async def list_suggestions(
        self, *, user_id: str, start: datetime, end: datetime
    ) -> list[BreakSuggestionRecord]:
        async with self._sessionmaker() as session:
            result = await session.execute(
                select(BreakSuggestion)
                .where(
                    BreakSuggestion.user_id == user_id,
                    BreakSuggestion.suggested_at >= _to_db(start),
                    BreakSuggestion.suggested_at < _to_db(end),
                )
                .order_by(BreakSuggestion.suggested_at)
            )
            return [_suggestion_payload(row) for row in result.scalars().all()]

    # -- meetings ------------------------------------------------------------

    async def get_meetings(
        self, *, user_id: str, start: datetime, end: datetime
    ) -> list[MeetingRecord]:
        """Meetings overlapping [start, end), ordered by start time."""
        async with self._sessionmaker() as session:
            result = await session.execute(
                select(Meeting)
                .where(
                    Meeting.user_id == user_id,
                    Meeting.start_time < _to_db(end),
                    Meeting.end_time > _to_db(start),
                )
                .order_by(Meeting.start_time)
            )
            return [_meeting_payload(row) for row in result.scalars().all()]

    async def create_meeting(
        self,
        *,
        user_id: str,
        start_time: datetime,
        end_time: datetime,
        title: str | None = None,
        external_id: str | None = None,
        source: str = "calendar",
    ) -> MeetingRecord:
        """Write path for the calendar sync collaborator (and fixtures)."""
        async with self._sessionmaker() as session:
            row = Meeting(
                user_id=user_id,
                start_time=_to_db(start_time),
                end_time=_to_db(end_time),
                title=title,
                external_id=external_id,
                source=source,
            )
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return _meeting_payload(row)

    # -- activity ------------------------------------------------------------

    async def log_activity(
        self, *, user_id: str | None, action: str, details: dict[str, Any] | None = None
    ) -> None:
        async with self._sessionmaker() as session:
            session.add(ActivityLog(user_id=user_id, action=action, details=details))
            await session.commit()

    async def list_activity(self, *, user_id: str) -> list[tuple[str, dict[str, Any] | None]]:
        async with self._sessionmaker() as session:
            result = await session.execute(
                select(ActivityLog)
                .where(ActivityLog.user_id == user_id)
                .order_by(ActivityLog.id)
            )
            return [(row.action, row.details) for row in result.scalars().all()]


async def ensure_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def _to_db(value: datetime) -> datetime:
    return as_utc(value).replace(tzinfo=None)


def _from_db(value: datetime | None) -> datetime | None:
    return as_utc(value) if value is not None else None


def _patch_values(patch: FocusSessionPatch | BreakSuggestionPatch) -> dict[str, Any]:
    values = {k: v for k, v in asdict(patch).items() if v is not None}
    return {k: _to_db(v) if isinstance(v, datetime) else v for k, v in values.items()}


def _user_payload(row: User) -> UserRecord:
    return UserRecord(
        id=row.id,
        slack_user_id=row.slack_user_id,
        slack_team_id=row.slack_team_id,
        email=row.email,
        name=row.name,
        timezone=row.timezone or "UTC",
    )


def _session_payload(row: FocusSession) -> FocusSessionRecord:
    return FocusSessionRecord(
        id=row.id,
        user_id=row.user_id,
        duration=row.duration,
        start_time=as_utc(row.start_time),
        end_time=_from_db(row.end_time),
        status=row.status,
        notification_sent=bool(row.notification_sent),
    )


def _suggestion_payload(row: BreakSuggestion) -> BreakSuggestionRecord:
    return BreakSuggestionRecord(
        id=row.id,
        user_id=row.user_id,
        type=row.type,
        message=row.message,
        reason=row.reason,
        accepted=bool(row.accepted),
        suggested_at=as_utc(row.suggested_at),
        accepted_at=_from_db(row.accepted_at),
    )


def _meeting_payload(row: Meeting) -> MeetingRecord:
    return MeetingRecord(
        id=row.id,
        user_id=row.user_id,
        title=row.title,
        start_time=as_utc(row.start_time),
        end_time=as_utc(row.end_time),
    )


__all__ = ["SessionStore", "SqlAlchemySessionStore", "ensure_schema"]
