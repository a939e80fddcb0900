from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from functools import partial
from typing import Any
from uuid import uuid4

from loguru import logger

from analytic_assistant.agent_config import AgentConfig
from analytic_assistant.memory.models import PLACEHOLDER_TITLE, MessageRecord, SessionRecord
from analytic_assistant.messages import first_user_text, message_text, normalize_history, visible_text
from analytic_assistant.provider import LLMProvider
from analytic_assistant.settings import ChatSettings, parse_chat_settings
from analytic_assistant.stream_events import Done, ErrorEvent, StreamEvent
from analytic_assistant.system_prompt import build_system_prompt
from analytic_assistant.tool import ToolContext
from analytic_assistant.tools.store.store_client import create_store_client
from analytic_assistant.turn_engine import TurnEngine, TurnOutcome
from analytic_assistant.usage.ledger import UsageLedger

_END = object()


@dataclass
class TurnContext:
    """Identity and cancellation state of one submitted turn."""

    session_id: str
    owner_id: str
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class AnalystAgent:
    def __init__(self, config: AgentConfig):
        self._registry = config.registry
        self._gateway = config.gateway
        self._max_tokens = config.max_tokens
        self._temperature = config.temperature
        self._max_rounds = config.max_rounds
        self._max_tool_result_chars = config.max_tool_result_chars
        self._pricing = config.pricing
        self._provider_factory = config.provider_factory
        self._title_service = config.title_service
        self._store_factory = config.store_factory or partial(
            create_store_client, timeout=config.store_timeout_seconds
        )
        self._background: set[asyncio.Task] = set()

    async def submit_turn(
        self,
        ctx: TurnContext,
        history: list[dict[str, Any]],
        settings: ChatSettings | dict | None,
    ) -> AsyncIterator[StreamEvent]:
        """Run one turn and yield its events as they happen.

        The stream always ends with exactly one ``Done`` or ``ErrorEvent``.
        Closing the iterator early cancels the turn: in-flight tools finish
        in the background and nothing is persisted.
        """
        chat_settings = settings if isinstance(settings, ChatSettings) else parse_chat_settings(settings)
        queue: asyncio.Queue = asyncio.Queue()
        task = asyncio.create_task(self._run_turn(ctx, history, chat_settings, queue.put))
        try:
            while True:
                event = await queue.get()
                if event is _END:
                    break
                yield event
            await task
        finally:
            if not task.done():
                logger.info(f"Caller left turn for session {ctx.session_id}; cancelling")
                ctx.cancel()
                self._background.add(task)
                task.add_done_callback(self._background.discard)

    async def wait_for_background(self) -> None:
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _run_turn(
        self,
        ctx: TurnContext,
        history: list[dict[str, Any]],
        settings: ChatSettings,
        emit: Callable[[Any], Awaitable[None]],
    ) -> None:
        try:
            if not settings.is_supported:
                await emit(ErrorEvent(settings.provider.reason))
                return
            if not history or history[-1].get("role") != "user":
                await emit(ErrorEvent("The conversation must end with a user message."))
                return

            provider = self._provider_factory(settings.provider)
            messages = normalize_history(history)
            existing = await self._gateway.get_session(ctx.session_id)

            ledger = UsageLedger(settings.provider_id, settings.model_id, pricing=self._pricing)
            outcome = await self._run_engine(ctx, provider, settings, messages, ledger, emit)

            if ctx.cancelled:
                logger.info(f"Turn for session {ctx.session_id} was cancelled; discarding its result")
                return
            if not outcome.settled:
                await emit(ErrorEvent(outcome.error or "The turn ended with an error."))
                return

            await self._settle(ctx, history, settings, provider, existing, outcome, ledger)
            await emit(Done(outcome.finish_reason))
        except Exception as ex:
            logger.exception(f"Turn for session {ctx.session_id} failed")
            await emit(ErrorEvent(str(ex) or type(ex).__name__))
        finally:
            await emit(_END)

    async def _run_engine(
        self,
        ctx: TurnContext,
        provider: LLMProvider,
        settings: ChatSettings,
        messages: list[dict],
        ledger: UsageLedger,
        emit: Callable[[Any], Awaitable[None]],
    ) -> TurnOutcome:
        store = self._store_factory(settings.store)
        engine = TurnEngine(
            provider=provider,
            model=settings.model_id,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
            system_prompt=build_system_prompt(store is not None),
            registry=self._registry,
            emit=emit,
            max_rounds=self._max_rounds,
            max_tool_result_chars=self._max_tool_result_chars,
        )
        try:
            return await engine.run(
                messages,
                ToolContext(store=store, session_id=ctx.session_id),
                ledger,
                is_cancelled=lambda: ctx.cancelled,
            )
        finally:
            if store is not None:
                await store.aclose()

    async def _settle(
        self,
        ctx: TurnContext,
        history: list[dict[str, Any]],
        settings: ChatSettings,
        provider: LLMProvider,
        existing: SessionRecord | None,
        outcome: TurnOutcome,
        ledger: UsageLedger,
    ) -> None:
        # Each write is best effort; failures are logged and never reach the stream.
        title = existing.title if existing is not None else PLACEHOLDER_TITLE
        if existing is None or existing.has_placeholder_title:
            source = first_user_text(history) if existing is None else visible_text(history)
            try:
                generated = await self._title_service.generate(provider, settings.model_id, source, ledger)
                if generated:
                    title = generated
            except Exception:
                logger.exception(f"Title generation failed for session {ctx.session_id}")

        try:
            await self._gateway.upsert_session(
                ctx.session_id,
                owner_id=ctx.owner_id,
                title=title,
                settings=settings.to_record(),
            )
        except Exception:
            logger.exception(f"Failed to upsert session {ctx.session_id}")

        user = history[-1]
        records = [
            MessageRecord(
                id=str(uuid4()),
                role="user",
                content=message_text(user),
                attachments=list(user.get("attachments") or []),
            )
        ]
        if outcome.text or outcome.invocations:
            records.append(
                MessageRecord(
                    id=str(uuid4()),
                    role="assistant",
                    content=outcome.text,
                    tool_invocations=[inv.to_dict() for inv in outcome.invocations],
                )
            )
        try:
            await self._gateway.insert_messages(ctx.session_id, records)
        except Exception:
            logger.exception(f"Failed to persist messages for session {ctx.session_id}")

        try:
            await ledger.commit(self._gateway, owner_id=ctx.owner_id, session_id=ctx.session_id)
        except Exception:
            logger.exception(f"Failed to record usage for session {ctx.session_id}")
