from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Protocol, Sequence

from productivitywise.storage import UserRecord

Blocks = Sequence[dict[str, Any]]


class StatusNotifier(Protocol):
    """Sets and clears the user's presence status in the chat platform."""

    async def set_status(
        self, user: UserRecord, text: str, emoji: str, expires_at: datetime
    ) -> None:
        ...

    async def clear_status(self, user: UserRecord) -> None:
        ...


class Pusher(Protocol):
    """Out-of-band delivery to a user, outside any request/response cycle."""

    async def push(
        self, slack_user_id: str, text: str, blocks: Optional[Blocks] = None
    ) -> None:
        ...


__all__ = ["Blocks", "Pusher", "StatusNotifier"]
