"""LLM configuration and client factories."""

from .factory import build_autogen_chat_client, llm_configured
from .generator import AutogenTextGenerator, TextGenerator, prompt

__all__ = [
    "AutogenTextGenerator",
    "TextGenerator",
    "build_autogen_chat_client",
    "llm_configured",
    "prompt",
]
