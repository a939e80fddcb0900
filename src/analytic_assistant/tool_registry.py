from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from loguru import logger

from analytic_assistant.tool import RAW_ARGUMENTS_KEY, Tool, ToolContext
from analytic_assistant.tools.analysis.code_interpreter_tool import CodeInterpreterTool
from analytic_assistant.tools.analysis.sandbox import DEFAULT_TIMEOUT_SECONDS, ScriptSandbox
from analytic_assistant.tools.base import tool_failure
from analytic_assistant.tools.store.get_data_tool import GetDataTool
from analytic_assistant.tools.store.get_reports_tool import GetReportsTool
from analytic_assistant.tools.store.list_customers_tool import ListCustomersTool
from analytic_assistant.tools.store.list_orders_tool import ListOrdersTool
from analytic_assistant.tools.store.list_products_tool import ListProductsTool
from analytic_assistant.tools.store.pagination import DEFAULT_PAGE_SIZE
from analytic_assistant.tools.store.store_overview_tool import StoreOverviewTool
from analytic_assistant.tools.visualization.create_chart_tool import CreateChartTool
from analytic_assistant.tools.visualization.create_table_tool import CreateTableTool


class ToolRegistry:
    """Read-only name -> tool map shared by every turn."""

    def __init__(self, tools: list[Tool]):
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            if tool.name in self._tools:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            self._tools[tool.name] = tool

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def tools(self) -> list[Tool]:
        return list(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    async def execute(self, name: str, tool_input: dict[str, Any], context: ToolContext) -> dict[str, Any]:
        tool = self._tools.get(name)
        if tool is None:
            logger.warning(f"Model requested unknown tool {name!r}")
            return tool_failure(f"Unknown tool '{name}'. Available tools: {', '.join(self._tools)}")
        if isinstance(tool_input, dict) and RAW_ARGUMENTS_KEY in tool_input:
            logger.warning(f"Model sent unparseable arguments for {name}")
            return tool_failure(
                "Tool arguments were not valid JSON. Send a JSON object matching the tool's input schema.",
                raw_arguments=str(tool_input[RAW_ARGUMENTS_KEY])[:500],
            )
        try:
            return await tool.execute(tool_input if isinstance(tool_input, dict) else {}, context)
        except Exception as ex:
            # Tools are expected to return failures, not raise; keep the turn alive regardless.
            logger.exception(f"Tool {name} raised instead of returning a failure")
            return tool_failure(f"Error executing tool '{name}': {ex}")


@dataclass(frozen=True)
class ToolGroup:
    enabled: Callable[[dict], bool]
    build: Callable[[dict], list[Tool]]


def _always(_: dict) -> bool:
    return True


def _store_tools(ctx: dict) -> list[Tool]:
    overview = StoreOverviewTool(ctx["now"]) if ctx.get("now") else StoreOverviewTool()
    return [
        ListProductsTool(),
        ListOrdersTool(),
        ListCustomersTool(),
        overview,
        GetReportsTool(),
        GetDataTool(),
    ]


def _visualization_tools(_: dict) -> list[Tool]:
    return [CreateChartTool(), CreateTableTool()]


def _analysis_enabled(ctx: dict) -> bool:
    return ctx.get("sandbox_timeout_seconds", DEFAULT_TIMEOUT_SECONDS) > 0


def _analysis_tools(ctx: dict) -> list[Tool]:
    sandbox = ScriptSandbox(
        timeout_seconds=ctx.get("sandbox_timeout_seconds", DEFAULT_TIMEOUT_SECONDS),
        page_size=ctx.get("fetch_page_size", DEFAULT_PAGE_SIZE),
    )
    return [CodeInterpreterTool(sandbox)]


_GROUPS = [
    ToolGroup(enabled=_always, build=_store_tools),
    ToolGroup(enabled=_always, build=_visualization_tools),
    ToolGroup(enabled=_analysis_enabled, build=_analysis_tools),
]


def build_registry(
    *,
    sandbox_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    fetch_page_size: int = DEFAULT_PAGE_SIZE,
    now: Callable | None = None,
) -> ToolRegistry:
    ctx = {
        "sandbox_timeout_seconds": sandbox_timeout_seconds,
        "fetch_page_size": fetch_page_size,
        "now": now,
    }

    tools: list[Tool] = []
    for group in _GROUPS:
        if group.enabled(ctx):
            tools.extend(group.build(ctx))
    return ToolRegistry(tools)
