from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from slack_sdk.web.async_client import AsyncWebClient

from productivitywise.core.logging_config import record_error

logger = logging.getLogger(__name__)


class SlackPusher:
    """Delivers out-of-band replies as a DM from the bot."""

    def __init__(self, client: AsyncWebClient) -> None:
        self._client = client
        self._dm_channels: dict[str, str] = {}

    async def push(
        self,
        slack_user_id: str,
        text: str,
        blocks: Optional[Sequence[dict[str, Any]]] = None,
    ) -> None:
        channel_id = await self._dm_channel(slack_user_id)
        if not channel_id:
            record_error(component="slack_delivery", error_type="dm_open_failed")
            raise RuntimeError(f"could not open a DM with {slack_user_id}")

        payload: dict[str, Any] = {"channel": channel_id, "text": text}
        if blocks:
            payload["blocks"] = list(blocks)
        try:
            await self._client.chat_postMessage(**payload)
        except Exception:
            record_error(component="slack_delivery", error_type="post_failed")
            raise
        logger.debug("Pushed DM to %s", slack_user_id)

    async def _dm_channel(self, slack_user_id: str) -> str:
        cached = self._dm_channels.get(slack_user_id)
        if cached:
            return cached
        dm = await self._client.conversations_open(users=[slack_user_id])
        channel_id = (dm.get("channel") or {}).get("id") or ""
        if channel_id:
            self._dm_channels[slack_user_id] = channel_id
        return channel_id


__all__ = ["SlackPusher"]
