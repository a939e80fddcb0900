from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from analytic_assistant.memory.conversation_store import PersistenceGateway
from analytic_assistant.provider import LLMProvider, create_provider
from analytic_assistant.services.title_service import TitleService
from analytic_assistant.settings import ProviderSettings, StoreCredentials
from analytic_assistant.tool_registry import ToolRegistry
from analytic_assistant.tools.store.store_client import StoreClient
from analytic_assistant.turn_engine import DEFAULT_MAX_ROUNDS
from analytic_assistant.usage.pricing import DEFAULT_PRICING, PricingTable


@dataclass
class AgentConfig:
    registry: ToolRegistry
    gateway: PersistenceGateway
    max_tokens: int = 8192
    temperature: float = 1.0
    max_rounds: int = DEFAULT_MAX_ROUNDS
    max_tool_result_chars: int = 40_000
    store_timeout_seconds: float = 30.0
    pricing: PricingTable = DEFAULT_PRICING
    provider_factory: Callable[[ProviderSettings], LLMProvider] = create_provider
    title_service: TitleService = field(default_factory=TitleService)
    # Defaults to an HTTP store client built from the turn's credentials.
    store_factory: Callable[[StoreCredentials | None], StoreClient | None] | None = None
