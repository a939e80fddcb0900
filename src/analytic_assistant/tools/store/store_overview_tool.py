from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any, Literal

from loguru import logger
from pydantic import BaseModel, Field

from analytic_assistant.tool import ToolContext
from analytic_assistant.tools.base import STORE_NOT_CONFIGURED, ValidatedTool, tool_failure
from analytic_assistant.tools.store.store_client import Page, StoreClient

Period = Literal["week", "month", "last_month", "year"]

TOP_PRODUCTS_LIMIT = 5


class StoreOverviewInput(BaseModel):
    period: Period = Field(default="month", description="The time period for the overview. Defaults to 'month'.")


def _utc_now() -> datetime:
    return datetime.now(UTC)


def period_window(period: Period, now: datetime) -> tuple[str, str | None]:
    """Return ISO ``(after, before)`` bounds for ``period``; ``before`` is None when open-ended."""
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if period == "week":
        return (now - timedelta(days=7)).isoformat(timespec="seconds"), None
    if period == "last_month":
        previous = (month_start - timedelta(days=1)).replace(day=1)
        return previous.isoformat(timespec="seconds"), month_start.isoformat(timespec="seconds")
    if period == "year":
        return month_start.replace(month=1).isoformat(timespec="seconds"), None
    return month_start.isoformat(timespec="seconds"), None


def _revenue(orders: list[dict[str, Any]]) -> float:
    total = 0.0
    for order in orders:
        try:
            total += float(order.get("total") or 0)
        except (TypeError, ValueError):
            continue
    return total


def _top_products(orders: list[dict[str, Any]], limit: int = TOP_PRODUCTS_LIMIT) -> list[dict[str, Any]]:
    quantities: Counter[str] = Counter()
    for order in orders:
        for item in order.get("line_items") or []:
            quantities[str(item.get("name"))] += int(item.get("quantity") or 0)
    return [{"name": name, "quantity": qty} for name, qty in quantities.most_common(limit)]


async def build_store_overview(store: StoreClient, period: Period, now: datetime) -> dict[str, Any]:
    """Fan out the four independent sub-fetches and fold them into one overview.

    A failed sub-fetch only zeroes its own fields; it is listed under
    ``degraded`` with its error message under ``errors``.
    """
    after, before = period_window(period, now)
    window = {"after": after, **({"before": before} if before else {})}

    names = ("products", "orders", "customers", "coupons")
    results = await asyncio.gather(
        store.get_products({"per_page": 1}),
        store.get_orders({**window, "per_page": 100, "status": "completed,processing"}),
        store.get_customers({**window, "per_page": 1}),
        store.get_coupons({"per_page": 1}),
        return_exceptions=True,
    )

    pages: dict[str, Page] = {}
    errors: dict[str, str] = {}
    for name, result in zip(names, results):
        if isinstance(result, BaseException):
            logger.warning(f"Store overview: '{name}' sub-fetch failed: {result}")
            errors[name] = str(result)
        else:
            pages[name] = result

    overview: dict[str, Any] = {
        "period": period,
        "totalRevenue": 0.0,
        "totalOrders": 0,
        "totalNewCustomers": 0,
        "averageOrderValue": 0.0,
        "topSellingProducts": [],
        "totalProductsInStore": 0,
        "totalCouponsAvailable": 0,
    }

    if "orders" in pages:
        orders = pages["orders"].items
        revenue = _revenue(orders)
        overview["totalRevenue"] = round(revenue, 2)
        overview["totalOrders"] = pages["orders"].total or len(orders)
        overview["averageOrderValue"] = round(revenue / len(orders), 2) if orders else 0.0
        overview["topSellingProducts"] = _top_products(orders)
    if "customers" in pages:
        overview["totalNewCustomers"] = pages["customers"].total
    if "products" in pages:
        overview["totalProductsInStore"] = pages["products"].total
    if "coupons" in pages:
        overview["totalCouponsAvailable"] = pages["coupons"].total

    overview["degraded"] = [name for name in names if name in errors]
    if errors:
        overview["errors"] = errors
    return overview


class StoreOverviewTool(ValidatedTool):
    name = "get_store_overview"
    description = (
        "Provides a comprehensive overview of the store's performance for a given period: revenue, "
        "order count, average order value, new customers, top selling products, product and coupon counts. "
        'Use this for general questions like "how is my store doing?" or "give me a summary".'
    )
    params_model = StoreOverviewInput

    def __init__(self, now: Callable[[], datetime] = _utc_now):
        self._now = now

    async def run(self, params: StoreOverviewInput, context: ToolContext) -> dict[str, Any]:
        if context.store is None:
            return tool_failure(STORE_NOT_CONFIGURED)
        overview = await build_store_overview(context.store, params.period, self._now())
        return {"success": True, **overview}
