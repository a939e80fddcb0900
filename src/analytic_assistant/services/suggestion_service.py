from __future__ import annotations

import json
import re
from typing import Any

from loguru import logger

from analytic_assistant.errors import SettingsError
from analytic_assistant.provider import LLMProvider, create_provider
from analytic_assistant.settings import ChatSettings
from analytic_assistant.usage.ledger import UsageGateway, UsageLedger, UsageSource
from analytic_assistant.usage.pricing import DEFAULT_PRICING, PricingTable

RECENT_MESSAGES = 5
SUGGESTION_COUNT = 3

_SUGGESTION_SYSTEM_PROMPT = """\
You are a helpful AI assistant that suggests the next logical questions a user might ask based on the provided conversation history.
- Provide 3 concise, relevant follow-up questions.
- Each suggestion should be a complete question a user could ask.
- IMPORTANT: Respond ONLY with a JSON array of strings in the format: ["Suggestion 1", "Suggestion 2", "Suggestion 3"]
- Do not add any other text, explanation, or formatting."""

_QUOTED = re.compile(r'"(.*?)"')


def parse_suggestions(text: str) -> list[str]:
    """Parse the model's JSON array, falling back to every double-quoted string in the text."""
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        logger.warning(f"Failed to parse suggestions JSON: {text[:200]!r}")
        return [s for s in _QUOTED.findall(text) if s.strip()]
    if isinstance(parsed, list):
        return [str(item) for item in parsed if str(item).strip()]
    return []


class SuggestionService:
    def __init__(
        self,
        gateway: UsageGateway,
        *,
        owner_id: str,
        pricing: PricingTable = DEFAULT_PRICING,
        provider_factory=create_provider,
        max_tokens: int = 512,
    ):
        self._gateway = gateway
        self._owner_id = owner_id
        self._pricing = pricing
        self._provider_factory = provider_factory
        self._max_tokens = max_tokens

    async def generate(
        self,
        history: list[dict[str, Any]],
        settings: ChatSettings,
        session_id: str | None = None,
    ) -> list[str]:
        if not history:
            raise ValueError("Conversation history is required.")
        if not settings.is_supported:
            raise SettingsError(settings.provider.reason)

        provider: LLMProvider = self._provider_factory(settings.provider)
        recent = [
            {"role": m.get("role"), "content": m.get("content", "")}
            for m in history[-RECENT_MESSAGES:]
        ]
        completion = await provider.create_message(
            settings.model_id,
            self._max_tokens,
            0.7,
            [{"role": "user", "content": f"Here is the conversation history:\n\n{json.dumps(recent, default=str)}"}],
            system_prompt=_SUGGESTION_SYSTEM_PROMPT,
        )

        ledger = UsageLedger(
            settings.provider_id,
            settings.model_id,
            pricing=self._pricing,
            default_source=UsageSource.SUGGESTION_GENERATION,
        )
        ledger.add(completion.usage)
        try:
            await ledger.commit(self._gateway, owner_id=self._owner_id, session_id=session_id)
        except Exception:
            logger.exception("Failed to record suggestion usage")

        return parse_suggestions(completion.text)[:SUGGESTION_COUNT]
