from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from analytic_assistant.errors import SettingsError
from analytic_assistant.settings import (
    AnthropicSettings,
    OpenAICompatibleSettings,
    ProviderSettings,
    UnsupportedProviderSettings,
)
from analytic_assistant.tool import Tool
from analytic_assistant.usage.tokens import TokenUsage

TextDeltaCallback = Callable[[str], Awaitable[None]]

# Normalized finish reasons.
FINISH_STOP = "stop"
FINISH_TOOL_CALLS = "tool-calls"
FINISH_LENGTH = "length"
FINISH_ERROR = "error"
FINISH_OTHER = "other"


@dataclass
class ModelResponse:
    """One model round in internal (Anthropic-style) block format."""

    message: dict
    tool_use_blocks: list[dict] = field(default_factory=list)
    finish_reason: str = FINISH_STOP
    usage: TokenUsage = field(default_factory=TokenUsage)

    @property
    def text(self) -> str:
        content = self.message.get("content", [])
        if isinstance(content, str):
            return content
        return "".join(b.get("text", "") for b in content if b.get("type") == "text")


@dataclass(frozen=True)
class TextCompletion:
    text: str
    usage: TokenUsage = field(default_factory=TokenUsage)


@runtime_checkable
class LLMProvider(Protocol):
    async def stream_chat(
        self,
        model: str,
        max_tokens: int,
        temperature: float,
        system_prompt: str,
        messages: list[dict],
        tools: list[dict],
        *,
        on_text_delta: TextDeltaCallback | None = None,
    ) -> ModelResponse:
        """Stream a chat response, forwarding text deltas to ``on_text_delta`` as they arrive."""
        ...

    async def create_message(
        self,
        model: str,
        max_tokens: int,
        temperature: float,
        messages: list[dict],
        *,
        system_prompt: str = "",
    ) -> TextCompletion:
        """Non-streaming message creation (used for titles and suggestions)."""
        ...

    def convert_tools(self, tools: list[Tool]) -> list[dict]:
        """Convert Tool protocol objects to provider-specific tool schema."""
        ...


def create_provider(settings: ProviderSettings) -> LLMProvider:
    """Factory: create an LLMProvider for resolved provider settings."""
    if isinstance(settings, AnthropicSettings):
        from analytic_assistant.providers.anthropic_provider import AnthropicProvider
        return AnthropicProvider(settings.api_key)
    if isinstance(settings, OpenAICompatibleSettings):
        from analytic_assistant.providers.openai_provider import OpenAIProvider
        return OpenAIProvider(settings.api_key, base_url=settings.base_url)
    if isinstance(settings, UnsupportedProviderSettings):
        raise SettingsError(settings.reason)
    raise SettingsError(f"Unknown provider settings: {settings!r}")
