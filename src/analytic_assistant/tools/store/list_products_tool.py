from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from analytic_assistant.tool import ToolContext
from analytic_assistant.tools.base import STORE_NOT_CONFIGURED, ValidatedTool, tool_failure


class ListProductsInput(BaseModel):
    per_page: int = Field(default=20, ge=1, le=100, description="Number of products to fetch (1-100)")
    page: int = Field(default=1, ge=1, description="Page number for pagination")
    orderby: Literal["date", "id", "include", "title", "slug", "modified", "price", "popularity", "rating"] = "date"
    order: Literal["asc", "desc"] = "desc"
    status: Literal["any", "draft", "pending", "private", "publish"] = "publish"
    category: Optional[str] = Field(default=None, description="Product category ID")
    search: Optional[str] = Field(default=None, description="Search term for products")
    after: Optional[str] = Field(default=None, description="ISO date string to get products created after this date")
    before: Optional[str] = Field(default=None, description="ISO date string to get products created before this date")
    stock_status: Optional[Literal["instock", "outofstock", "onbackorder"]] = None
    on_sale: Optional[bool] = Field(default=None, description="Set to true to fetch only on-sale products.")
    featured: Optional[bool] = Field(default=None, description="Set to true to fetch only featured products.")
    min_price: Optional[str] = Field(default=None, description="Minimum price for the product range.")
    max_price: Optional[str] = Field(default=None, description="Maximum price for the product range.")


def simplify_product(product: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": product.get("id"),
        "name": product.get("name"),
        "price": product.get("price"),
        "regular_price": product.get("regular_price"),
        "sale_price": product.get("sale_price"),
        "on_sale": product.get("on_sale"),
        "stock_status": product.get("stock_status"),
        "total_sales": product.get("total_sales"),
        "permalink": product.get("permalink"),
        "categories": [
            {"id": cat.get("id"), "name": cat.get("name")}
            for cat in product.get("categories") or []
        ],
    }


class ListProductsTool(ValidatedTool):
    name = "get_products"
    description = "Fetch products from the store with paging, sorting and filters (category, search, dates, stock, sale, price range)."
    params_model = ListProductsInput

    async def run(self, params: ListProductsInput, context: ToolContext) -> dict[str, Any]:
        if context.store is None:
            return tool_failure(STORE_NOT_CONFIGURED)
        page = await context.store.get_products(params.model_dump(exclude_none=True))
        return {
            "success": True,
            "data": [simplify_product(p) for p in page.items],
            **page.metadata(),
        }
