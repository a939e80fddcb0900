from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from analytic_assistant.tool import ToolContext
from analytic_assistant.tools.base import STORE_NOT_CONFIGURED, ValidatedTool, tool_failure


class ListCustomersInput(BaseModel):
    per_page: int = Field(default=20, ge=1, le=100, description="Number of customers to fetch (1-100)")
    page: int = Field(default=1, ge=1, description="Page number for pagination")
    orderby: Literal["id", "include", "name", "registered_date"] = "registered_date"
    order: Literal["asc", "desc"] = "desc"
    role: Literal["all", "administrator", "customer", "shop_manager", "subscriber"] = "customer"
    search: Optional[str] = Field(default=None, description="Search term for customers")
    email: Optional[str] = Field(default=None, description="Exact email address to match")
    after: Optional[str] = Field(default=None, description="ISO date string to get customers registered after this date")
    before: Optional[str] = Field(default=None, description="ISO date string to get customers registered before this date")


def simplify_customer(customer: dict[str, Any]) -> dict[str, Any]:
    billing = customer.get("billing") or {}
    return {
        "id": customer.get("id"),
        "first_name": customer.get("first_name"),
        "last_name": customer.get("last_name"),
        "email": customer.get("email"),
        "username": customer.get("username"),
        "date_created": customer.get("date_created"),
        "city": billing.get("city"),
        "country": billing.get("country"),
        "is_paying_customer": customer.get("is_paying_customer"),
    }


class ListCustomersTool(ValidatedTool):
    name = "get_customers"
    description = "Fetch customers (accounts) from the store with paging, sorting, search and registration date filters."
    params_model = ListCustomersInput

    async def run(self, params: ListCustomersInput, context: ToolContext) -> dict[str, Any]:
        if context.store is None:
            return tool_failure(STORE_NOT_CONFIGURED)
        page = await context.store.get_customers(params.model_dump(exclude_none=True))
        return {
            "success": True,
            "data": [simplify_customer(c) for c in page.items],
            **page.metadata(),
        }
