"""Slack presence updates for focus sessions and breaks.

Setting another person's status needs that person's own user token. When the
configured user token belongs to someone else (or there is none), the user
gets a DM with the same information instead.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

from productivitywise.core.logging_config import record_error
from productivitywise.engine.ports import Pusher
from productivitywise.engine.responses import format_clock
from productivitywise.storage import UserRecord

logger = logging.getLogger(__name__)

_NO_TOKEN_TIP = (
    "💡 *Pro tip:* For automatic status updates, reinstall the app from your "
    "workspace's App Directory to grant user permissions!"
)


class SlackStatusNotifier:
    def __init__(self, pusher: Pusher, user_client: AsyncWebClient | None = None) -> None:
        self._pusher = pusher
        self._user_client = user_client
        self._token_owner: Optional[str] = None
        self._owner_resolved = False

    async def set_status(
        self, user: UserRecord, text: str, emoji: str, expires_at: datetime
    ) -> None:
        applied = await self._profile_set(
            user,
            status_text=text,
            status_emoji=emoji,
            status_expiration=int(expires_at.timestamp()),
        )
        ends = format_clock(expires_at, user.timezone)
        lines = [f"{emoji} *{text}* until {ends}"]
        if applied:
            lines.append("✅ Your Slack status has been updated automatically.")
        else:
            lines.append(f'Set your Slack status to "{text}" so teammates know.')
            lines.append(_NO_TOKEN_TIP)
        await self._pusher.push(user.slack_user_id, "\n\n".join(lines))

    async def clear_status(self, user: UserRecord) -> None:
        applied = await self._profile_set(
            user, status_text="", status_emoji="", status_expiration=0
        )
        if applied:
            message = "✅ Your Slack status has been cleared automatically."
        else:
            message = "💡 _Don't forget to clear your Slack status if you set it manually._"
        await self._pusher.push(user.slack_user_id, message)

    async def _profile_set(self, user: UserRecord, **profile) -> bool:
        if self._user_client is None:
            return False
        if await self._owner() != user.slack_user_id:
            return False
        try:
            await self._user_client.users_profile_set(profile=profile)
        except SlackApiError as exc:
            logger.warning(
                "users.profile.set failed for %s: %s",
                user.slack_user_id,
                exc.response.get("error"),
            )
            record_error(component="status_notifier", error_type="profile_set_failed")
            return False
        return True

    async def _owner(self) -> Optional[str]:
        if not self._owner_resolved and self._user_client is not None:
            try:
                auth = await self._user_client.auth_test()
                self._token_owner = auth.get("user_id")
            except SlackApiError as exc:
                logger.warning("User token auth.test failed: %s", exc.response.get("error"))
                record_error(component="status_notifier", error_type="auth_test_failed")
            self._owner_resolved = True
        return self._token_owner


__all__ = ["SlackStatusNotifier"]
