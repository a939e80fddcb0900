import asyncio
import json
import unittest

from analytic_assistant.tool import ToolContext
from analytic_assistant.tool_registry import ToolRegistry
from analytic_assistant.tools.analysis.code_interpreter_tool import CodeInterpreterTool
from analytic_assistant.tools.analysis.sandbox import ScriptSandbox
from analytic_assistant.turn_engine import ToolInvocation, TurnEngine, TurnState
from analytic_assistant.usage.ledger import UsageLedger
from analytic_assistant.usage.tokens import TokenUsage
from tests.fakes import FakeProvider, text_response, tool_response


class _EchoTool:
    def __init__(self, name: str, delay: float = 0.0, fail: bool = False, size: int = 0, payload: dict | None = None):
        self._name = name
        self._payload = payload
        self._delay = delay
        self._fail = fail
        self._size = size
        self.calls: list[dict] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return f"{self._name} tool"

    @property
    def input_schema(self) -> dict:
        return {"type": "object", "properties": {}}

    async def execute(self, tool_input: dict, context: ToolContext) -> dict:
        self.calls.append(tool_input)
        await asyncio.sleep(self._delay)
        if self._fail:
            return {"success": False, "error": "bad input"}
        if self._payload is not None:
            return self._payload
        return {"success": True, "echo": tool_input, "padding": "x" * self._size}


class TurnEngineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.events: list = []

    async def _emit(self, event) -> None:
        self.events.append(event)

    def _engine(self, provider: FakeProvider, tools: list, **kwargs) -> TurnEngine:
        return TurnEngine(
            provider=provider,
            model="m",
            max_tokens=100,
            temperature=0.0,
            system_prompt="sys",
            registry=ToolRegistry(tools),
            emit=self._emit,
            **kwargs,
        )

    def _run(self, engine: TurnEngine, **kwargs):
        messages = [{"role": "user", "content": "go"}]
        ledger = UsageLedger("anthropic", "claude-sonnet-4-5-20250929")
        outcome = asyncio.run(engine.run(messages, ToolContext(), ledger, **kwargs))
        return outcome, messages, ledger

    def test_text_only_response_is_done_after_one_round(self) -> None:
        provider = FakeProvider([text_response("All good")])
        outcome, messages, ledger = self._run(self._engine(provider, []))

        self.assertIs(TurnState.DONE, outcome.state)
        self.assertEqual("stop", outcome.finish_reason)
        self.assertEqual(1, outcome.rounds)
        self.assertEqual("All good", outcome.text)
        self.assertEqual(TokenUsage(10, 5), ledger.usage)
        self.assertEqual(2, len(messages))

    def test_parallel_tool_results_keep_request_order(self) -> None:
        slow = _EchoTool("slow", delay=0.05)
        fast = _EchoTool("fast")
        provider = FakeProvider([
            tool_response(("a", "slow", {"n": 1}), ("b", "fast", {"n": 2})),
            text_response("done"),
        ])
        outcome, messages, _ = self._run(self._engine(provider, [slow, fast]))

        self.assertEqual(["a", "b"], [inv.tool_call_id for inv in outcome.invocations])
        tool_results = messages[2]["content"]
        self.assertEqual(["a", "b"], [b["tool_use_id"] for b in tool_results])
        self.assertEqual({"n": 1}, json.loads(tool_results[0]["content"])["echo"])
        # The follow-up round saw both results.
        self.assertEqual(3, len(provider.stream_calls[1]))

    def test_failed_tool_result_is_flagged_and_turn_continues(self) -> None:
        provider = FakeProvider([tool_response(("a", "broken", {})), text_response("recovered")])
        outcome, messages, _ = self._run(self._engine(provider, [_EchoTool("broken", fail=True)]))

        self.assertIs(TurnState.DONE, outcome.state)
        self.assertTrue(messages[2]["content"][0]["is_error"])

    def test_unknown_tool_yields_error_result(self) -> None:
        provider = FakeProvider([tool_response(("a", "nope", {})), text_response("ok")])
        outcome, _, _ = self._run(self._engine(provider, [_EchoTool("known")]))

        result = outcome.invocations[0].result
        self.assertFalse(result["success"])
        self.assertIn("Unknown tool 'nope'", result["error"])
        self.assertIn("known", result["error"])

    def test_round_cap_ends_in_cap_reached(self) -> None:
        provider = FakeProvider([tool_response((f"c{i}", "t", {})) for i in range(3)])
        outcome, _, _ = self._run(self._engine(provider, [_EchoTool("t")], max_rounds=3))

        self.assertIs(TurnState.CAP_REACHED, outcome.state)
        self.assertEqual("tool-calls", outcome.finish_reason)
        self.assertEqual(3, outcome.rounds)
        self.assertTrue(outcome.settled)
        self.assertEqual(3, len(outcome.invocations))

    def test_model_exception_ends_in_error(self) -> None:
        provider = FakeProvider([tool_response(("a", "t", {})), RuntimeError("boom")])
        outcome, _, _ = self._run(self._engine(provider, [_EchoTool("t")]))

        self.assertIs(TurnState.ERROR, outcome.state)
        self.assertEqual("boom", outcome.error)
        self.assertFalse(outcome.settled)

    def test_cancellation_stops_before_next_model_call(self) -> None:
        provider = FakeProvider([tool_response(("a", "t", {})), text_response("never")])
        cancelled = {"value": False}
        tool = _EchoTool("t")

        original = tool.execute

        async def execute_and_cancel(tool_input, context):
            cancelled["value"] = True
            return await original(tool_input, context)

        tool.execute = execute_and_cancel
        outcome, _, _ = self._run(self._engine(provider, [tool]), is_cancelled=lambda: cancelled["value"])

        self.assertIs(TurnState.ERROR, outcome.state)
        self.assertEqual(1, len(provider.stream_calls))

    def test_tool_status_events_bracket_each_call(self) -> None:
        provider = FakeProvider([tool_response(("a", "t", {"x": 1})), text_response("ok")])
        self._run(self._engine(provider, [_EchoTool("t")]))

        statuses = [e for e in self.events if getattr(e, "status", None)]
        self.assertEqual(["requested", "resolved"], [e.status for e in statuses])
        self.assertEqual({"x": 1}, statuses[0].args)
        self.assertTrue(statuses[1].result["success"])

    def test_long_tool_results_are_truncated_for_the_model(self) -> None:
        provider = FakeProvider([tool_response(("a", "big", {})), text_response("ok")])
        outcome, messages, _ = self._run(
            self._engine(provider, [_EchoTool("big", size=500)], max_tool_result_chars=100)
        )

        content = messages[2]["content"][0]["content"]
        self.assertIn("[OUTPUT TRUNCATED", content)
        # The recorded invocation keeps the full result.
        self.assertEqual(500, len(outcome.invocations[0].result["padding"]))

    def test_unserializable_tool_result_becomes_a_failure(self) -> None:
        circular: dict = {"success": True}
        circular["self"] = circular
        payloads = {"huge": {"success": True, "value": 10 ** 5000}, "circular": circular}
        for label, payload in payloads.items():
            with self.subTest(payload=label):
                provider = FakeProvider([tool_response(("a", "odd", {})), text_response("recovered")])
                outcome, messages, _ = self._run(self._engine(provider, [_EchoTool("odd", payload=payload)]))

                self.assertIs(TurnState.DONE, outcome.state)
                self.assertEqual("recovered", outcome.text)
                result = outcome.invocations[0].result
                self.assertFalse(result["success"])
                self.assertIn("could not be serialized", result["error"])
                block = messages[2]["content"][0]
                self.assertTrue(block["is_error"])
                self.assertFalse(json.loads(block["content"])["success"])

    def test_code_interpreter_with_oversized_integer_keeps_the_turn_alive(self) -> None:
        tool = CodeInterpreterTool(ScriptSandbox(timeout_seconds=5))
        provider = FakeProvider([
            tool_response(("a", tool.name, {"code": "return 10 ** 5000"})),
            text_response("recovered"),
        ])
        outcome, messages, _ = self._run(self._engine(provider, [tool]))

        self.assertIs(TurnState.DONE, outcome.state)
        self.assertFalse(outcome.invocations[0].result["success"])
        self.assertTrue(messages[2]["content"][0]["is_error"])


class ToolInvocationTests(unittest.TestCase):
    def test_resolve_only_once(self) -> None:
        invocation = ToolInvocation("a", "t", {})
        invocation.resolve({"success": True})
        with self.assertRaises(RuntimeError):
            invocation.resolve({"success": True})

    def test_to_dict_shape(self) -> None:
        invocation = ToolInvocation("a", "t", {"k": 1})
        self.assertEqual("call", invocation.to_dict()["state"])
        invocation.resolve({"success": True})
        self.assertEqual(
            {"toolCallId": "a", "toolName": "t", "args": {"k": 1}, "state": "result", "result": {"success": True}},
            invocation.to_dict(),
        )


if __name__ == "__main__":
    unittest.main()
