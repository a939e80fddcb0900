from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from analytic_assistant.tool import ToolContext
from analytic_assistant.tools.base import STORE_NOT_CONFIGURED, ValidatedTool, tool_failure


class GetReportsInput(BaseModel):
    type: Literal["sales", "top_sellers", "coupons/totals", "customers/totals", "orders/totals"] = Field(
        description="Type of report to fetch"
    )
    period: Optional[Literal["week", "month", "last_month", "year"]] = Field(
        default=None, description="Report period (sales and top_sellers only)"
    )


class GetReportsTool(ValidatedTool):
    name = "get_reports"
    description = "Get store reports: sales, top sellers, or coupon / customer / order totals."
    params_model = GetReportsInput

    async def run(self, params: GetReportsInput, context: ToolContext) -> dict[str, Any]:
        if context.store is None:
            return tool_failure(STORE_NOT_CONFIGURED)
        query = {"period": params.period} if params.period else {}
        page = await context.store.get_page(f"reports/{params.type}", query)
        return {"success": True, "type": params.type, "data": page.items}
