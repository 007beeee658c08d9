from __future__ import annotations

import logging
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from productivitywise.core.clock import as_utc
from productivitywise.storage import MeetingRecord, SessionStore

logger = logging.getLogger(__name__)


def resolve_timezone(name: str | None) -> ZoneInfo | timezone:
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r; falling back to UTC", name)
        return timezone.utc


def local_day_bounds(now: datetime, tz_name: str | None) -> tuple[datetime, datetime]:
    """UTC bounds of the local calendar day containing ``now``."""
    tz = resolve_timezone(tz_name)
    local = as_utc(now).astimezone(tz)
    start_local = datetime.combine(local.date(), time.min, tzinfo=tz)
    end_local = datetime.combine(local.date() + timedelta(days=1), time.min, tzinfo=tz)
    return as_utc(start_local), as_utc(end_local)


class MeetingOracle:
    """Read-only view over a user's synced calendar."""

    def __init__(self, store: SessionStore) -> None:
        self._store = store

    async def meetings_for_day(
        self, user_id: str, now: datetime, tz_name: str | None
    ) -> list[MeetingRecord]:
        start, end = local_day_bounds(now, tz_name)
        return await self._store.get_meetings(user_id=user_id, start=start, end=end)

    async def meetings_between(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[MeetingRecord]:
        return await self._store.get_meetings(user_id=user_id, start=start, end=end)


__all__ = ["MeetingOracle", "local_day_bounds", "resolve_timezone"]
