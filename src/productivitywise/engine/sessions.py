"""Focus session lifecycle: none -> active -> completed | interrupted."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from productivitywise.core.clock import Clock, as_utc, utc_now
from productivitywise.errors import ActiveSessionExists
from productivitywise.storage import (
    FocusSessionPatch,
    FocusSessionRecord,
    SessionStore,
    UserRecord,
)
from productivitywise.storage.models import FocusSessionStatus

from .executor import TimeoutBoundedExecutor
from .ports import Pusher, StatusNotifier

logger = logging.getLogger(__name__)

FOCUS_STATUS_TEXT = "In focus mode"
FOCUS_STATUS_EMOJI = ":dart:"

SESSION_COMPLETE_TEXT = (
    "✅ *Focus Session Complete!*\n\nGreat work! You've finished your focus session.\n\n"
    "Time to take a well-deserved break or move on to your next task! 🎉"
)


class TransitionKind(str, Enum):
    STARTED = "started"
    ALREADY_ACTIVE = "already_active"
    ENDED = "ended"
    INTERRUPTED = "interrupted"
    EXPIRED = "expired"
    NOT_ACTIVE = "not_active"


@dataclass(frozen=True)
class SessionOutcome:
    kind: TransitionKind
    session: Optional[FocusSessionRecord] = None

    @property
    def changed(self) -> bool:
        return self.kind in (
            TransitionKind.STARTED,
            TransitionKind.ENDED,
            TransitionKind.INTERRUPTED,
            TransitionKind.EXPIRED,
        )


class SessionStateMachine:
    """Applies focus session transitions against the persisted record.

    Every transition re-reads the stored session and writes with a conditional
    update, so concurrent requests for one user cannot both succeed. Status
    changes and activity records are queued per user on the executor and never
    delay or fail the transition itself.
    """

    def __init__(
        self,
        store: SessionStore,
        executor: TimeoutBoundedExecutor,
        notifier: StatusNotifier,
        *,
        pusher: Pusher | None = None,
        scheduler: AsyncIOScheduler | None = None,
        now: Clock = utc_now,
    ) -> None:
        self._store = store
        self._executor = executor
        self._notifier = notifier
        self._pusher = pusher
        self._scheduler = scheduler
        self._now = now

    async def start(
        self, user: UserRecord, duration: int, now: datetime | None = None
    ) -> SessionOutcome:
        now = as_utc(now) if now else self._now()
        existing = await self._store.get_active_session(user.id)
        if existing is not None:
            return SessionOutcome(TransitionKind.ALREADY_ACTIVE, existing)
        try:
            session = await self._store.create_session(
                user_id=user.id, duration=duration, start_time=now
            )
        except ActiveSessionExists:
            logger.info("Concurrent start for user %s lost the race", user.id)
            return SessionOutcome(
                TransitionKind.ALREADY_ACTIVE,
                await self._store.get_active_session(user.id),
            )

        logger.info(
            "Focus session started",
            extra={"user_id": user.id, "session_id": session.id, "action": "focus"},
        )
        self._schedule_expiry(session)
        self._executor.submit(
            user.id,
            lambda: self._notifier.set_status(
                user, FOCUS_STATUS_TEXT, FOCUS_STATUS_EMOJI, session.scheduled_end
            ),
            label="focus_status_set",
        )
        self._log(
            user.id,
            "focus_session_started",
            {"session_id": session.id, "duration": duration},
        )
        return SessionOutcome(TransitionKind.STARTED, session)

    async def end(self, user: UserRecord, now: datetime | None = None) -> SessionOutcome:
        active = await self._store.get_active_session(user.id)
        if active is None:
            return SessionOutcome(TransitionKind.NOT_ACTIVE)
        return await self._finish(
            user,
            active,
            status=FocusSessionStatus.COMPLETED,
            now=now,
            kind=TransitionKind.ENDED,
            trigger="manual_end_command",
        )

    async def end_session(
        self, session_id: str, user: UserRecord, now: datetime | None = None
    ) -> SessionOutcome:
        """End one specific session, e.g. from a button on an older message."""
        session = await self._store.get_session(session_id)
        if session is None or session.user_id != user.id or not session.is_active:
            return SessionOutcome(TransitionKind.NOT_ACTIVE, session)
        return await self._finish(
            user,
            session,
            status=FocusSessionStatus.COMPLETED,
            now=now,
            kind=TransitionKind.ENDED,
            trigger="end_focus_button",
        )

    async def interrupt(
        self, user: UserRecord, now: datetime | None = None, reason: str = "interrupted"
    ) -> SessionOutcome:
        active = await self._store.get_active_session(user.id)
        if active is None:
            return SessionOutcome(TransitionKind.NOT_ACTIVE)
        return await self._finish(
            user,
            active,
            status=FocusSessionStatus.INTERRUPTED,
            now=now,
            kind=TransitionKind.INTERRUPTED,
            trigger=reason,
        )

    async def expire(self, session_id: str, now: datetime | None = None) -> SessionOutcome:
        """Complete a session whose planned duration has elapsed."""
        now = as_utc(now) if now else self._now()
        session = await self._store.get_session(session_id)
        if session is None or not session.is_active:
            return SessionOutcome(TransitionKind.NOT_ACTIVE, session)
        updated = await self._store.update_session(
            session_id,
            FocusSessionPatch(
                status=FocusSessionStatus.COMPLETED.value,
                end_time=now,
                notification_sent=True,
            ),
            expected_status=FocusSessionStatus.ACTIVE.value,
        )
        if updated is None:
            return SessionOutcome(TransitionKind.NOT_ACTIVE, session)

        user = await self._store.get_user(session.user_id)
        logger.info(
            "Focus session expired",
            extra={"user_id": session.user_id, "session_id": session_id},
        )
        if user is not None:
            self._executor.submit(
                user.id, lambda: self._notifier.clear_status(user), label="focus_status_clear"
            )
            if self._pusher is not None:
                pusher = self._pusher
                self._executor.submit(
                    user.id,
                    lambda: pusher.push(user.slack_user_id, SESSION_COMPLETE_TEXT),
                    label="focus_complete_push",
                )
        self._log(
            session.user_id,
            "focus_session_ended",
            {"session_id": session_id, "duration": session.duration, "trigger": "timer"},
        )
        return SessionOutcome(TransitionKind.EXPIRED, updated)

    async def _finish(
        self,
        user: UserRecord,
        session: FocusSessionRecord,
        *,
        status: FocusSessionStatus,
        now: datetime | None,
        kind: TransitionKind,
        trigger: str,
    ) -> SessionOutcome:
        now = as_utc(now) if now else self._now()
        updated = await self._store.update_session(
            session.id,
            FocusSessionPatch(status=status.value, end_time=now),
            expected_status=FocusSessionStatus.ACTIVE.value,
        )
        if updated is None:
            # Another request finished it first.
            return SessionOutcome(TransitionKind.NOT_ACTIVE, session)

        logger.info(
            "Focus session %s",
            status.value,
            extra={"user_id": user.id, "session_id": session.id, "outcome": trigger},
        )
        self._cancel_expiry(session.id)
        self._executor.submit(
            user.id, lambda: self._notifier.clear_status(user), label="focus_status_clear"
        )
        action = (
            "focus_session_interrupted"
            if status is FocusSessionStatus.INTERRUPTED
            else "focus_session_ended"
        )
        self._log(
            user.id,
            action,
            {"session_id": session.id, "duration": session.duration, "trigger": trigger},
        )
        return SessionOutcome(kind, updated)

    def _log(self, user_id: str, action: str, details: dict[str, Any]) -> None:
        self._executor.submit(
            user_id,
            lambda: self._store.log_activity(user_id=user_id, action=action, details=details),
            label="activity_log",
        )

    def _schedule_expiry(self, session: FocusSessionRecord) -> None:
        if self._scheduler is None:
            return
        self._scheduler.add_job(
            self._expire_job,
            trigger="date",
            run_date=session.scheduled_end,
            id=self._job_id(session.id),
            kwargs={"session_id": session.id},
            replace_existing=True,
        )

    def _cancel_expiry(self, session_id: str) -> None:
        if self._scheduler is None:
            return
        try:
            self._scheduler.remove_job(self._job_id(session_id))
        except JobLookupError:
            logger.debug("No expiry job for session %s", session_id)

    async def _expire_job(self, session_id: str) -> None:
        try:
            await self.expire(session_id)
        except Exception:
            logger.exception("Failed to expire focus session %s", session_id)

    @staticmethod
    def _job_id(session_id: str) -> str:
        return f"focus-expiry::{session_id}"


__all__ = [
    "FOCUS_STATUS_EMOJI",
    "FOCUS_STATUS_TEXT",
    "SessionOutcome",
    "SessionStateMachine",
    "TransitionKind",
]
