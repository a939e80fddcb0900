from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from loguru import logger

from analytic_assistant.usage.pricing import DEFAULT_PRICING, PricingTable
from analytic_assistant.usage.tokens import TokenUsage


class UsageSource(str, Enum):
    TURN = "turn"
    TITLE_GENERATION = "title-generation"
    SUGGESTION_GENERATION = "suggestion-generation"


@dataclass(frozen=True)
class UsageRecord:
    owner_id: str
    session_id: str | None
    provider: str
    model: str
    prompt_tokens: int
    completion_tokens: int
    cost_usd: float | None
    source: str
    created_at: str = ""

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class UsageGateway(Protocol):
    async def increment_usage(
        self,
        session_id: str,
        *,
        prompt_tokens: int,
        completion_tokens: int,
        cost_usd: float | None,
    ) -> None: ...

    async def log_usage(self, record: UsageRecord) -> None: ...


class UsageLedger:
    """Accumulates token deltas for one unit of work (a turn, or a suggestion request).

    Deltas are tagged with the call that produced them so the usage log can
    tell turn, title and suggestion calls apart, but ``commit`` folds them
    into a single add-this-delta call on the session counters.
    """

    def __init__(
        self,
        provider: str,
        model: str,
        *,
        pricing: PricingTable = DEFAULT_PRICING,
        default_source: UsageSource = UsageSource.TURN,
    ):
        self._provider = provider
        self._model = model
        self._pricing = pricing
        self._default_source = default_source
        self._by_source: dict[UsageSource, TokenUsage] = {}

    @property
    def usage(self) -> TokenUsage:
        total = TokenUsage()
        for delta in self._by_source.values():
            total = total + delta
        return total

    def usage_for(self, source: UsageSource) -> TokenUsage:
        return self._by_source.get(source, TokenUsage())

    def add(self, delta: TokenUsage, source: UsageSource | None = None) -> None:
        key = source or self._default_source
        self._by_source[key] = self.usage_for(key) + delta

    def estimate_cost(self, usage: TokenUsage | None = None) -> float | None:
        return self._pricing.estimate_cost(self._provider, self._model, self.usage if usage is None else usage)

    def records(self, *, owner_id: str, session_id: str | None) -> list[UsageRecord]:
        return [
            UsageRecord(
                owner_id=owner_id,
                session_id=session_id,
                provider=self._provider,
                model=self._model,
                prompt_tokens=usage.prompt_tokens,
                completion_tokens=usage.completion_tokens,
                cost_usd=self.estimate_cost(usage),
                source=source.value,
            )
            for source, usage in self._by_source.items()
            if usage.total_tokens > 0
        ]

    async def commit(
        self,
        gateway: UsageGateway,
        *,
        owner_id: str,
        session_id: str | None,
    ) -> list[UsageRecord]:
        total = self.usage
        if total.total_tokens == 0:
            return []
        cost = self.estimate_cost(total)
        if cost is None:
            logger.warning(f"No price for {self._provider}/{self._model}; cost recorded as unknown")
        if session_id is not None:
            await gateway.increment_usage(
                session_id,
                prompt_tokens=total.prompt_tokens,
                completion_tokens=total.completion_tokens,
                cost_usd=cost,
            )
        records = self.records(owner_id=owner_id, session_id=session_id)
        for record in records:
            await gateway.log_usage(record)
        logger.debug(
            f"Usage committed: prompt={total.prompt_tokens} completion={total.completion_tokens} "
            f"cost={cost} sources={[r.source for r in records]}"
        )
        return records
