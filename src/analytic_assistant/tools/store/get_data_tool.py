from __future__ import annotations

from typing import Any, Optional
from urllib.parse import parse_qsl

from pydantic import BaseModel, Field, field_validator

from analytic_assistant.tool import ToolContext
from analytic_assistant.tools.base import STORE_NOT_CONFIGURED, ValidatedTool, tool_failure


class GetDataInput(BaseModel):
    endpoint: str = Field(description="The REST API endpoint path, e.g. '/products/attributes' or '/reports/sales'.")
    params: Optional[str] = Field(
        default=None,
        description="An optional string of URL query parameters, e.g. 'per_page=5&orderby=name'",
    )

    @field_validator("endpoint")
    @classmethod
    def _relative_path(cls, value: str) -> str:
        value = value.strip()
        if not value or "://" in value or ".." in value:
            raise ValueError("endpoint must be a relative API path such as '/products/categories'")
        return value


class GetDataTool(ValidatedTool):
    name = "get_data"
    description = (
        "A generic tool to fetch data from any store REST API endpoint. Use this for advanced queries "
        "when no specific tool (like get_orders or get_products) matches the request. "
        "Example endpoints: '/products/categories', '/reports/sales', '/system_status'."
    )
    params_model = GetDataInput

    async def run(self, params: GetDataInput, context: ToolContext) -> dict[str, Any]:
        if context.store is None:
            return tool_failure(STORE_NOT_CONFIGURED)
        query = dict(parse_qsl(params.params or "", keep_blank_values=False))
        page = await context.store.get_page(params.endpoint, query)
        return {
            "success": True,
            "note_to_agent": (
                f"Successfully fetched data from '{params.endpoint}'. The raw data is in the 'data' property. "
                "Analyze it and decide whether to present it in a table, a chart or a summary."
            ),
            "data": page.items,
            "total": page.total or page.item_count,
        }
