from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from analytic_assistant.tool import ToolContext
from analytic_assistant.tools.analysis.sandbox import ScriptSandbox
from analytic_assistant.tools.base import ValidatedTool


class CodeInterpreterInput(BaseModel):
    code: str = Field(description="Python statements forming a function body. Must end with 'return <result>'.")


class CodeInterpreterTool(ValidatedTool):
    name = "code_interpreter"
    description = (
        "Executes a sandboxed Python script for complex, multi-step analysis. This is your most powerful tool "
        "for deep queries. The script is a function body: no imports, and it MUST 'return' a final result, "
        "which will be sent back to you.\n"
        "Available helpers:\n"
        "- fetch(endpoint, params=None, all_pages=True) gets ALL records of 'products', 'orders', 'customers' "
        "or 'coupons' (set all_pages=False for a single page).\n"
        "- Math: add(a, b), subtract(a, b), multiply(a, b), divide(a, b) (0 for a zero divisor)\n"
        "- Lists: sum, min, max, len, sorted, average(values), sort_by(rows, key, desc=False)\n"
        "- Grouping: group_by(rows, key) returns {key: [rows]}\n"
        "- Dates: format_date(value), days_between(a, b), datetime, date, timedelta\n"
        "- Modules: math, statistics, json"
    )
    params_model = CodeInterpreterInput

    def __init__(self, sandbox: ScriptSandbox):
        self._sandbox = sandbox

    async def run(self, params: CodeInterpreterInput, context: ToolContext) -> dict[str, Any]:
        result = await self._sandbox.run(params.code, context.store)
        return result.to_payload()
