"""Text generation seam used for intent parsing and reply phrasing."""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

from autogen_core.models import ChatCompletionClient, LLMMessage, SystemMessage, UserMessage

from productivitywise.errors import TextGenerationError

logger = logging.getLogger(__name__)


class TextGenerator(Protocol):
    async def complete(self, messages: Sequence[LLMMessage]) -> str:
        ...


def prompt(system: str, user: str) -> list[LLMMessage]:
    return [SystemMessage(content=system), UserMessage(content=user, source="user")]


class AutogenTextGenerator:
    """Adapts an autogen ``ChatCompletionClient`` to ``TextGenerator``."""

    def __init__(self, client: ChatCompletionClient) -> None:
        self._client = client

    async def complete(self, messages: Sequence[LLMMessage]) -> str:
        try:
            result = await self._client.create(list(messages))
        except Exception as exc:
            raise TextGenerationError(f"chat completion failed: {exc}") from exc
        content = result.content
        if not isinstance(content, str) or not content.strip():
            raise TextGenerationError("chat completion returned no text")
        return content

    async def close(self) -> None:
        await self._client.close()


__all__ = ["AutogenTextGenerator", "TextGenerator", "prompt"]
