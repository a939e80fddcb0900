from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from analytic_assistant.tool import ToolContext
from analytic_assistant.tools.base import ValidatedTool
from analytic_assistant.tools.visualization.chart_builder import ChartKind, build_chart_config


class CreateChartInput(BaseModel):
    # Field names double as snake_case aliases for the camelCase wire names.
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(description="The title of the chart.")
    chart_type: ChartKind = Field(alias="type", description="The type of chart to create.")
    chart_data: list[dict[str, Any]] = Field(alias="chartData", description="The array of data objects to be plotted.")
    x_axis_column: str = Field(alias="xAxisColumn", description="The key in chartData objects for the X-axis labels.")
    y_axis_column: str = Field(alias="yAxisColumn", description="The key in chartData objects for the Y-axis data.")
    dataset_label: str = Field(default="Data", alias="datasetLabel", description="The label for the dataset.")


class CreateChartTool(ValidatedTool):
    name = "create_chart"
    description = (
        "Creates a chart for data visualization. Provide raw data as an array of objects and specify which "
        "columns to use for X and Y axes. IMPORTANT: Use the exact parameter names: title, type, chartData, "
        "xAxisColumn, yAxisColumn."
    )
    params_model = CreateChartInput

    async def run(self, params: CreateChartInput, context: ToolContext) -> dict[str, Any]:
        config = build_chart_config(
            title=params.title,
            kind=params.chart_type,
            rows=params.chart_data,
            category_field=params.x_axis_column,
            value_field=params.y_axis_column,
            series_label=params.dataset_label,
        )
        return {"success": True, "chartConfig": config, "displayType": "chart", "visualizationCreated": True}
