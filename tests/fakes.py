from __future__ import annotations

from typing import Any

from analytic_assistant.errors import ExternalResourceError, ResourceErrorHint
from analytic_assistant.memory.models import MessageRecord, SessionRecord
from analytic_assistant.provider import FINISH_STOP, FINISH_TOOL_CALLS, ModelResponse, TextCompletion
from analytic_assistant.tools.store.store_client import Page
from analytic_assistant.usage.ledger import UsageRecord
from analytic_assistant.usage.tokens import TokenUsage


def text_response(text: str, usage: TokenUsage | None = None, finish_reason: str = FINISH_STOP) -> ModelResponse:
    return ModelResponse(
        message={"role": "assistant", "content": [{"type": "text", "text": text}]},
        finish_reason=finish_reason,
        usage=usage or TokenUsage(10, 5),
    )


def tool_response(*calls: tuple[str, str, dict], text: str = "", usage: TokenUsage | None = None) -> ModelResponse:
    blocks = [{"type": "tool_use", "id": cid, "name": name, "input": args} for cid, name, args in calls]
    content = ([{"type": "text", "text": text}] if text else []) + blocks
    return ModelResponse(
        message={"role": "assistant", "content": content},
        tool_use_blocks=blocks,
        finish_reason=FINISH_TOOL_CALLS,
        usage=usage or TokenUsage(10, 5),
    )


class FakeProvider:
    """Replays scripted responses; an Exception in the script is raised instead."""

    def __init__(self, responses: list[Any], completions: list[Any] | None = None, deltas: bool = True):
        self._responses = list(responses)
        self._completions = list(completions or [])
        self._deltas = deltas
        self.stream_calls: list[list[dict]] = []
        self.create_calls: list[dict] = []

    def convert_tools(self, tools) -> list[dict]:
        return [{"name": t.name, "description": t.description, "input_schema": t.input_schema} for t in tools]

    async def stream_chat(self, model, max_tokens, temperature, system_prompt, messages, tools, *, on_text_delta=None):
        self.stream_calls.append([dict(m) for m in messages])
        if not self._responses:
            raise AssertionError("FakeProvider ran out of scripted responses")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if self._deltas and on_text_delta is not None and response.text:
            await on_text_delta(response.text)
        return response

    async def create_message(self, model, max_tokens, temperature, messages, *, system_prompt=""):
        self.create_calls.append({"model": model, "messages": messages, "system_prompt": system_prompt})
        if not self._completions:
            return TextCompletion(text="", usage=TokenUsage())
        completion = self._completions.pop(0)
        if isinstance(completion, Exception):
            raise completion
        return completion


class FakeStore:
    """In-memory page source keyed by endpoint.

    ``failures`` maps endpoints to raised errors; ``max_per_page`` caps page
    sizes the way a server that ignores larger per_page values would.
    """

    def __init__(
        self,
        data: dict[str, list[dict]] | None = None,
        *,
        totals: dict[str, int] | None = None,
        failures: dict[str, Exception] | None = None,
        max_per_page: int | None = None,
    ):
        self._data = data or {}
        self._max_per_page = max_per_page
        self._totals = totals or {}
        self._failures = failures or {}
        self.requests: list[tuple[str, dict]] = []
        self.closed = False

    async def get_page(self, endpoint: str, params: dict[str, Any] | None = None) -> Page:
        params = dict(params or {})
        self.requests.append((endpoint, params))
        if endpoint in self._failures:
            raise self._failures[endpoint]
        items = self._data.get(endpoint, [])
        per_page = int(params.get("per_page", 20))
        if self._max_per_page is not None:
            per_page = min(per_page, self._max_per_page)
        page = int(params.get("page", 1))
        chunk = items[(page - 1) * per_page : page * per_page]
        total = self._totals.get(endpoint, len(items))
        return Page(
            items=[dict(i) for i in chunk],
            total=total,
            total_pages=max(1, -(-total // per_page)),
            current_page=page,
            per_page=per_page,
        )

    async def get_products(self, params=None) -> Page:
        return await self.get_page("products", params)

    async def get_orders(self, params=None) -> Page:
        return await self.get_page("orders", params)

    async def get_customers(self, params=None) -> Page:
        return await self.get_page("customers", params)

    async def get_coupons(self, params=None) -> Page:
        return await self.get_page("coupons", params)

    async def aclose(self) -> None:
        self.closed = True


def unreachable(message: str = "Network Error: store offline") -> ExternalResourceError:
    return ExternalResourceError(message, hint=ResourceErrorHint.UNREACHABLE)


class FakeGateway:
    """Records every persistence call; ``fail_on`` names methods that raise."""

    def __init__(self, sessions: dict[str, SessionRecord] | None = None, fail_on: set[str] | None = None):
        self.sessions = dict(sessions or {})
        self.upserts: list[dict] = []
        self.inserted: list[tuple[str, list[MessageRecord]]] = []
        self.increments: list[dict] = []
        self.usage_log: list[UsageRecord] = []
        self._fail_on = fail_on or set()

    def _maybe_fail(self, name: str) -> None:
        if name in self._fail_on:
            raise RuntimeError(f"{name} failed")

    async def get_session(self, session_id: str) -> SessionRecord | None:
        self._maybe_fail("get_session")
        return self.sessions.get(session_id)

    async def upsert_session(self, session_id, *, owner_id, title, settings) -> None:
        self._maybe_fail("upsert_session")
        self.upserts.append({"session_id": session_id, "owner_id": owner_id, "title": title, "settings": settings})

    async def insert_messages(self, session_id, messages) -> None:
        self._maybe_fail("insert_messages")
        self.inserted.append((session_id, list(messages)))

    async def increment_usage(self, session_id, *, prompt_tokens, completion_tokens, cost_usd) -> None:
        self._maybe_fail("increment_usage")
        self.increments.append({
            "session_id": session_id,
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "cost_usd": cost_usd,
        })

    async def log_usage(self, record: UsageRecord) -> None:
        self._maybe_fail("log_usage")
        self.usage_log.append(record)


def session_record(session_id: str = "s1", title: str = "Existing chat") -> SessionRecord:
    return SessionRecord(
        id=session_id,
        owner_id="owner-1",
        title=title,
        settings={},
        prompt_tokens=0,
        completion_tokens=0,
        cost_usd=0.0,
        cost_unknown=False,
        created_at="2026-01-01T00:00:00+00:00",
        updated_at="2026-01-01T00:00:00+00:00",
    )


async def collect(stream) -> list[Any]:
    return [event async for event in stream]


