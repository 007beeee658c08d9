from __future__ import annotations

import logging
from dataclasses import dataclass

from autogen_core.models import ModelFamily
from autogen_ext.models.openai import OpenAIChatCompletionClient

from productivitywise.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OpenAICompatibleProviderConfig:
    api_key: str
    base_url: str | None
    model: str


def _clean(value: str | None) -> str:
    return (value or "").strip()


def provider_config(config: Settings | None = None) -> OpenAICompatibleProviderConfig:
    config = config or default_settings
    return OpenAICompatibleProviderConfig(
        api_key=_clean(config.openai_api_key),
        base_url=_clean(config.openai_base_url) or None,
        model=_clean(config.openai_model) or "gpt-4o-mini",
    )


def build_autogen_chat_client(
    *,
    config: Settings | None = None,
    model: str | None = None,
    temperature: float | None = None,
) -> OpenAIChatCompletionClient:
    config = config or default_settings
    provider = provider_config(config)
    kwargs: dict = {
        "model": _clean(model) or provider.model,
        "api_key": provider.api_key,
        "temperature": config.llm_temperature if temperature is None else temperature,
    }
    if provider.base_url:
        kwargs["base_url"] = provider.base_url
        # Non-OpenAI endpoints serve model ids autogen-ext cannot look up.
        kwargs["model_info"] = {
            "family": ModelFamily.ANY,
            "vision": False,
            "function_calling": False,
            "json_output": True,
            "structured_output": False,
            "multiple_system_messages": True,
        }
    logger.debug("Building chat client for model %s", kwargs["model"])
    return OpenAIChatCompletionClient(**kwargs)


def llm_configured(config: Settings | None = None) -> bool:
    key = provider_config(config).api_key
    return bool(key) and key != "x"


__all__ = ["build_autogen_chat_client", "llm_configured", "provider_config"]
