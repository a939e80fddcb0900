from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from analytic_assistant.tools.store.store_client import StoreClient


@dataclass(frozen=True)
class ToolContext:
    """Per-turn resources handed to every tool execution.

    The registry itself is built once per process; anything that depends on
    the caller's settings (the store client) travels here instead.
    """

    store: StoreClient | None = None
    session_id: str | None = None


@runtime_checkable
class Tool(Protocol):
    @property
    def name(self) -> str: ...

    @property
    def description(self) -> str: ...

    @property
    def input_schema(self) -> dict[str, Any]: ...

    async def execute(self, tool_input: dict[str, Any], context: ToolContext) -> dict[str, Any]:
        """Run the tool. Must never raise: failures come back as ``{"success": False, "error": ...}``."""
        ...


# Key a provider puts in a tool call's input when the model's arguments were not a JSON object.
RAW_ARGUMENTS_KEY = "__raw_arguments__"
