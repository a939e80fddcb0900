from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from loguru import logger

from analytic_assistant.provider import FINISH_ERROR, FINISH_TOOL_CALLS, LLMProvider
from analytic_assistant.stream_events import StreamEvent, TextDelta, ToolStatus
from analytic_assistant.tool import ToolContext
from analytic_assistant.tool_registry import ToolRegistry
from analytic_assistant.tools.base import tool_failure
from analytic_assistant.usage.ledger import UsageLedger

DEFAULT_MAX_ROUNDS = 25


class TurnState(str, Enum):
    AWAITING_MODEL = "awaiting-model"
    EXECUTING_TOOLS = "executing-tools"
    DONE = "done"
    ERROR = "error"
    CAP_REACHED = "cap-reached"


TERMINAL_STATES = frozenset({TurnState.DONE, TurnState.ERROR, TurnState.CAP_REACHED})


@dataclass
class ToolInvocation:
    tool_call_id: str
    tool_name: str
    args: dict[str, Any]
    state: str = "requested"
    result: dict[str, Any] | None = None

    def resolve(self, result: dict[str, Any]) -> None:
        if self.state == "resolved":
            raise RuntimeError(f"Tool invocation {self.tool_call_id} already has a result")
        self.result = result
        self.state = "resolved"

    def to_dict(self) -> dict[str, Any]:
        return {
            "toolCallId": self.tool_call_id,
            "toolName": self.tool_name,
            "args": self.args,
            "state": "result" if self.state == "resolved" else "call",
            "result": self.result,
        }


@dataclass
class TurnOutcome:
    state: TurnState
    finish_reason: str
    rounds: int
    texts: list[str] = field(default_factory=list)
    invocations: list[ToolInvocation] = field(default_factory=list)
    error: str | None = None

    @property
    def settled(self) -> bool:
        return self.state in (TurnState.DONE, TurnState.CAP_REACHED)

    @property
    def text(self) -> str:
        return "\n\n".join(t for t in self.texts if t.strip())


class TurnEngine:
    """Round loop of one turn, written as an explicit state machine.

    awaiting-model -> executing-tools -> awaiting-model -> ... ends in
    done (model stopped asking for tools), cap-reached (round budget spent
    while tools were still being requested) or error (model call failed).
    """

    def __init__(
        self,
        *,
        provider: LLMProvider,
        model: str,
        max_tokens: int,
        temperature: float,
        system_prompt: str,
        registry: ToolRegistry,
        emit: Callable[[StreamEvent], Awaitable[None]],
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        max_tool_result_chars: int = 40_000,
    ) -> None:
        self._provider = provider
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._system_prompt = system_prompt
        self._registry = registry
        self._converted_tools = provider.convert_tools(registry.tools())
        self._emit = emit
        self._max_rounds = max(1, max_rounds)
        self._max_tool_result_chars = max_tool_result_chars

    async def run(
        self,
        messages: list[dict],
        context: ToolContext,
        ledger: UsageLedger,
        *,
        is_cancelled: Callable[[], bool] | None = None,
    ) -> TurnOutcome:
        """Drive the loop over ``messages`` (extended in place) until a terminal state.

        A cancelled turn stops before its next model call and ends in error.
        """
        outcome = TurnOutcome(state=TurnState.AWAITING_MODEL, finish_reason="", rounds=0)
        pending: list[dict] = []

        while outcome.state not in TERMINAL_STATES:
            if outcome.state is TurnState.AWAITING_MODEL:
                if is_cancelled is not None and is_cancelled():
                    outcome.state = TurnState.ERROR
                    outcome.finish_reason = FINISH_ERROR
                    outcome.error = "Turn cancelled"
                    continue
                if outcome.rounds >= self._max_rounds:
                    logger.warning(f"Turn stopped after reaching the round cap ({self._max_rounds})")
                    outcome.state = TurnState.CAP_REACHED
                    outcome.finish_reason = FINISH_TOOL_CALLS
                    continue

                outcome.rounds += 1
                try:
                    response = await self._provider.stream_chat(
                        self._model,
                        self._max_tokens,
                        self._temperature,
                        self._system_prompt,
                        messages,
                        self._converted_tools,
                        on_text_delta=self._forward_text,
                    )
                except Exception as ex:
                    logger.error(f"Model call failed in round {outcome.rounds}: {ex}")
                    outcome.state = TurnState.ERROR
                    outcome.finish_reason = FINISH_ERROR
                    outcome.error = str(ex) or type(ex).__name__
                    continue

                ledger.add(response.usage)
                messages.append(response.message)
                outcome.texts.append(response.text)

                if response.tool_use_blocks:
                    pending = response.tool_use_blocks
                    outcome.state = TurnState.EXECUTING_TOOLS
                else:
                    outcome.finish_reason = response.finish_reason
                    outcome.state = TurnState.DONE

            elif outcome.state is TurnState.EXECUTING_TOOLS:
                invocations, tool_results = await self.execute_tools(pending, context)
                outcome.invocations.extend(invocations)
                messages.append({"role": "user", "content": tool_results})
                pending = []
                outcome.state = TurnState.AWAITING_MODEL

        logger.info(
            f"Turn finished: state={outcome.state.value}, finish_reason={outcome.finish_reason}, "
            f"rounds={outcome.rounds}, tool_calls={len(outcome.invocations)}"
        )
        return outcome

    async def execute_tools(
        self,
        tool_use_blocks: list[dict],
        context: ToolContext,
    ) -> tuple[list[ToolInvocation], list[dict]]:
        """Run every requested tool concurrently; results come back in request order."""
        invocations = [
            ToolInvocation(tool_call_id=b["id"], tool_name=b["name"], args=b.get("input") or {})
            for b in tool_use_blocks
        ]

        async def run_one(invocation: ToolInvocation) -> dict:
            await self._emit(ToolStatus("requested", invocation.tool_call_id, invocation.tool_name, args=invocation.args))
            result = await self._registry.execute(invocation.tool_name, invocation.args, context)
            try:
                content = json.dumps(result, default=str)
            except (TypeError, ValueError, RecursionError) as ex:
                logger.error(f"{invocation.tool_name} returned a result that cannot be serialized: {ex}")
                result = tool_failure(f"Tool '{invocation.tool_name}' returned a result that could not be serialized: {ex}")
                content = json.dumps(result)
            invocation.resolve(result)
            await self._emit(ToolStatus("resolved", invocation.tool_call_id, invocation.tool_name, result=result))
            block = {
                "type": "tool_result",
                "tool_use_id": invocation.tool_call_id,
                "content": self._truncate_tool_result(content, invocation.tool_name),
            }
            if result.get("success") is False:
                block["is_error"] = True
            return block

        tool_results = list(await asyncio.gather(*(run_one(inv) for inv in invocations)))
        return invocations, tool_results

    async def _forward_text(self, text: str) -> None:
        await self._emit(TextDelta(text))

    def _truncate_tool_result(self, result: str, tool_name: str) -> str:
        if self._max_tool_result_chars <= 0 or len(result) <= self._max_tool_result_chars:
            return result

        original_length = len(result)
        truncated = result[: self._max_tool_result_chars]
        message = (
            f"\n\n[OUTPUT TRUNCATED: Showing {self._max_tool_result_chars:,} "
            f"of {original_length:,} characters from {tool_name}]"
        )
        logger.warning(
            f"{tool_name} output truncated from {original_length:,} "
            f"to {self._max_tool_result_chars:,} chars"
        )
        return truncated + message
