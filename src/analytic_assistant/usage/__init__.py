from analytic_assistant.usage.ledger import UsageGateway, UsageLedger, UsageRecord, UsageSource
from analytic_assistant.usage.pricing import DEFAULT_PRICING, ModelPricing, PricingTable
from analytic_assistant.usage.tokens import TokenUsage

__all__ = [
    "DEFAULT_PRICING",
    "ModelPricing",
    "PricingTable",
    "TokenUsage",
    "UsageGateway",
    "UsageLedger",
    "UsageRecord",
    "UsageSource",
]
