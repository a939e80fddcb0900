import asyncio
import unittest
from decimal import Decimal

from analytic_assistant.usage import DEFAULT_PRICING, ModelPricing, PricingTable, TokenUsage, UsageLedger, UsageSource
from tests.fakes import FakeGateway


class PricingTableTests(unittest.TestCase):
    def test_known_model_cost(self) -> None:
        cost = DEFAULT_PRICING.estimate_cost("anthropic", "claude-sonnet-4-5-20250929", TokenUsage(1_000_000, 100_000))
        self.assertEqual(4.5, cost)

    def test_unknown_pair_has_no_cost(self) -> None:
        self.assertIsNone(DEFAULT_PRICING.estimate_cost("anthropic", "claude-unknown", TokenUsage(10, 10)))
        self.assertIsNone(DEFAULT_PRICING.estimate_cost("mystery", "gpt-4o", TokenUsage(10, 10)))

    def test_cost_is_rounded_to_six_decimals(self) -> None:
        table = PricingTable({"p": {"m": ModelPricing(Decimal("0.15"), Decimal("0.60"))}})
        self.assertEqual(0.000002, table.estimate_cost("p", "m", TokenUsage(7, 1)))


class UsageLedgerTests(unittest.TestCase):
    def test_deltas_accumulate_per_source(self) -> None:
        ledger = UsageLedger("openai", "gpt-4o-mini")
        ledger.add(TokenUsage(10, 5))
        ledger.add(TokenUsage(20, 5))
        ledger.add(TokenUsage(3, 1), UsageSource.TITLE_GENERATION)

        self.assertEqual(TokenUsage(33, 11), ledger.usage)
        self.assertEqual(TokenUsage(30, 10), ledger.usage_for(UsageSource.TURN))
        self.assertEqual(44, ledger.usage.total_tokens)

    def test_commit_increments_once_and_logs_each_source(self) -> None:
        gateway = FakeGateway()
        ledger = UsageLedger("anthropic", "claude-sonnet-4-5-20250929")
        ledger.add(TokenUsage(1000, 200))
        ledger.add(TokenUsage(50, 10), UsageSource.TITLE_GENERATION)

        records = asyncio.run(ledger.commit(gateway, owner_id="o1", session_id="s1"))

        self.assertEqual(
            [{"session_id": "s1", "prompt_tokens": 1050, "completion_tokens": 210, "cost_usd": 0.00630}],
            gateway.increments,
        )
        self.assertEqual(["turn", "title-generation"], [r.source for r in records])
        self.assertEqual(records, gateway.usage_log)
        self.assertEqual("o1", records[0].owner_id)

    def test_unknown_price_commits_null_cost(self) -> None:
        gateway = FakeGateway()
        ledger = UsageLedger("openrouter", "some/unpriced-model")
        ledger.add(TokenUsage(10, 10))

        asyncio.run(ledger.commit(gateway, owner_id="o1", session_id="s1"))

        self.assertIsNone(gateway.increments[0]["cost_usd"])
        self.assertIsNone(gateway.usage_log[0].cost_usd)

    def test_empty_ledger_writes_nothing(self) -> None:
        gateway = FakeGateway()
        records = asyncio.run(UsageLedger("openai", "gpt-4o").commit(gateway, owner_id="o1", session_id="s1"))

        self.assertEqual([], records)
        self.assertEqual([], gateway.increments)
        self.assertEqual([], gateway.usage_log)

    def test_commit_without_session_only_logs(self) -> None:
        gateway = FakeGateway()
        ledger = UsageLedger("openai", "gpt-4o", default_source=UsageSource.SUGGESTION_GENERATION)
        ledger.add(TokenUsage(5, 5))

        asyncio.run(ledger.commit(gateway, owner_id="o1", session_id=None))

        self.assertEqual([], gateway.increments)
        self.assertEqual("suggestion-generation", gateway.usage_log[0].source)


class TokenUsageTests(unittest.TestCase):
    def test_addition(self) -> None:
        self.assertEqual(TokenUsage(3, 5), TokenUsage(1, 2) + TokenUsage(2, 3))


if __name__ == "__main__":
    unittest.main()
