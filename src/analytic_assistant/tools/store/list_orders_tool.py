from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from analytic_assistant.tool import ToolContext
from analytic_assistant.tools.base import STORE_NOT_CONFIGURED, ValidatedTool, tool_failure


class ListOrdersInput(BaseModel):
    per_page: int = Field(default=20, ge=1, le=100, description="Number of orders to fetch (1-100)")
    page: int = Field(default=1, ge=1, description="Page number for pagination")
    orderby: Literal["date", "id", "include", "title", "slug", "modified"] = "date"
    order: Literal["asc", "desc"] = "desc"
    status: Literal["any", "pending", "processing", "on-hold", "completed", "cancelled", "refunded", "failed"] = "any"
    customer: Optional[int] = Field(default=None, description="Customer ID to filter orders")
    after: Optional[str] = Field(default=None, description="ISO date string to get orders after this date")
    before: Optional[str] = Field(default=None, description="ISO date string to get orders before this date")


def _money(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def simplify_order(order: dict[str, Any]) -> dict[str, Any]:
    billing = order.get("billing") or {}
    line_items = order.get("line_items") or []
    total = _money(order.get("total"))
    tax = _money(order.get("total_tax"))
    shipping = _money(order.get("shipping_total"))
    discount = _money(order.get("discount_total"))
    return {
        "Order ID": order.get("id"),
        "Date": order.get("date_created"),
        "Status": order.get("status"),
        "customer": {
            "id": order.get("customer_id"),
            "first_name": billing.get("first_name"),
            "last_name": billing.get("last_name"),
            "email": billing.get("email"),
        },
        "Items": len(line_items),
        "products": [
            {
                "product_id": item.get("product_id"),
                "name": item.get("name"),
                "quantity": item.get("quantity"),
                "total": item.get("total"),
            }
            for item in line_items
        ],
        # Subtotal = total - tax - shipping + discount
        "Subtotal": f"{total - tax - shipping + discount:.2f}",
        "Discount": f"{discount:.2f}",
        "Shipping": f"{shipping:.2f}",
        "Tax": f"{tax:.2f}",
        "Total": f"{total:.2f}",
        "Payment Method": order.get("payment_method_title"),
    }


class ListOrdersTool(ValidatedTool):
    name = "get_orders"
    description = (
        "Fetch orders from the store with paging, sorting, status, customer and date filters. "
        "Each order is returned with its customer, products and a financial breakdown."
    )
    params_model = ListOrdersInput

    async def run(self, params: ListOrdersInput, context: ToolContext) -> dict[str, Any]:
        if context.store is None:
            return tool_failure(STORE_NOT_CONFIGURED)
        page = await context.store.get_orders(params.model_dump(exclude_none=True))
        return {
            "success": True,
            "data": [simplify_order(o) for o in page.items],
            **page.metadata(),
        }
