from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from analytic_assistant.tool import ToolContext
from analytic_assistant.tools.base import ValidatedTool
from analytic_assistant.tools.visualization.table_builder import build_table


class TableColumn(BaseModel):
    key: str = Field(description="The key from the data object to use for this column (e.g. 'id', 'total').")
    header: str = Field(description="The user-friendly display name for the column header (e.g. 'Order ID').")


class CreateTableInput(BaseModel):
    title: Optional[str] = Field(default=None, description="Table title, e.g. 'Recent Orders' or 'Top Products'")
    columns: list[TableColumn] = Field(
        description="An array of column definition objects. Each object must map a data key to a display header."
    )
    rows: list[dict[str, Any]] = Field(description="Table rows as an array of objects keyed by column key.")
    summary: Optional[str] = Field(default=None, description="Brief summary of the table data")


class CreateTableTool(ValidatedTool):
    name = "create_table"
    description = (
        "Creates a table for data display. Use this to show lists of items like orders or products. "
        "Ensure the keys in the `rows` objects match the `key` of each column."
    )
    params_model = CreateTableInput

    async def run(self, params: CreateTableInput, context: ToolContext) -> dict[str, Any]:
        table = build_table(
            title=params.title,
            columns=[col.model_dump() for col in params.columns],
            rows=params.rows,
            summary=params.summary,
        )
        return {"success": True, "tableData": table, "displayType": "table", "visualizationCreated": True}
