import asyncio
import sys
from uuid import uuid4

from dotenv import load_dotenv
from loguru import logger

from analytic_assistant.agent import TurnContext
from analytic_assistant.app_config import load_json_config, parse_app_config, resolve_runtime_env
from analytic_assistant.bootstrap import AppRuntime, bootstrap_runtime
from analytic_assistant.commands.router import CommandRouter
from analytic_assistant.stream_events import Done, ErrorEvent, TextDelta, ToolStatus

_HELP = """\
Commands:
  /help         show this help
  /suggest      suggest follow-up questions for this conversation
  /usage [n]    show page n of your usage log
  /new          start a new conversation
  exit | quit   leave"""


class Repl:
    def __init__(self, runtime: AppRuntime, session_id: str):
        self._runtime = runtime
        self._session_id = session_id
        self._history: list[dict] = []
        self._router = CommandRouter(
            on_help=self._on_help,
            on_suggest=self._on_suggest,
            on_usage=self._on_usage,
            on_new=self._on_new,
            on_unknown=lambda cmd: print(f"Unknown command: {cmd} (try /help)"),
        )

    async def load_history(self, *, announce: bool = True) -> None:
        records = await self._runtime.conversations.load_messages(self._session_id)
        # Keep the local copy when nothing was persisted for this turn.
        if records:
            self._history = [r.to_ui_message() for r in records]
        if announce and self._history:
            print(f"Resumed session {self._session_id} ({len(self._history)} message(s))")

    async def handle(self, user_input: str) -> None:
        if await self._router.try_handle(user_input):
            return

        self._history.append({"id": str(uuid4()), "role": "user", "content": user_input})
        ctx = TurnContext(session_id=self._session_id, owner_id=self._runtime.owner_id)
        async for event in self._runtime.agent.submit_turn(ctx, self._history, self._runtime.settings):
            _render(event)
        await self.load_history(announce=False)

    async def _on_help(self) -> None:
        print(_HELP)

    async def _on_suggest(self) -> None:
        if not self._history:
            print("Nothing to suggest yet.")
            return
        suggestions = await self._runtime.suggestions.generate(
            self._history, self._runtime.settings, self._session_id
        )
        for i, suggestion in enumerate(suggestions, start=1):
            print(f"  {i}. {suggestion}")

    async def _on_usage(self, command: str) -> None:
        parts = command.split()
        page = int(parts[1]) if len(parts) > 1 and parts[1].isdigit() else 1
        records, total_pages = await self._runtime.conversations.list_usage(self._runtime.owner_id, page=page)
        if not records:
            print("No usage recorded.")
            return
        for r in records:
            cost = "unknown" if r.cost_usd is None else f"${r.cost_usd:.6f}"
            print(
                f"  {r.created_at}  {r.source:<22} {r.provider}/{r.model}  "
                f"in={r.prompt_tokens:,} out={r.completion_tokens:,} cost={cost}"
            )
        print(f"Page {page} of {total_pages}")

    async def _on_new(self) -> None:
        self._session_id = str(uuid4())
        self._history = []
        print(f"Started session {self._session_id}")


def _render(event) -> None:
    if isinstance(event, TextDelta):
        print(event.text, end="", flush=True)
    elif isinstance(event, ToolStatus):
        if event.status == "requested":
            print(f"\n  [tool] {event.name} ...", flush=True)
        else:
            ok = (event.result or {}).get("success", True)
            print(f"  [tool] {event.name} {'done' if ok else 'failed'}", flush=True)
    elif isinstance(event, Done):
        print()
    elif isinstance(event, ErrorEvent):
        print(f"\nError: {event.message}")


async def main() -> None:
    load_dotenv()

    app = parse_app_config(load_json_config())
    env = resolve_runtime_env(app.provider_name)
    runtime = await bootstrap_runtime(app, env)

    if not runtime.settings.is_supported:
        logger.error(f"{runtime.settings.provider.reason} Set {env.provider_env_var}.")
        sys.exit(1)

    session_id = app.configured_session_id or str(uuid4())
    repl = Repl(runtime, session_id)
    await repl.load_history()

    print("analytic-assistant (type 'exit' to quit, '/help' for commands)")
    print(f"Provider: {runtime.settings.provider_id} ({runtime.settings.model_id})")
    if runtime.settings.store is not None:
        print(f"Store: {runtime.settings.store.url}")
    else:
        print("Store: not configured (set STORE_URL, STORE_CONSUMER_KEY, STORE_CONSUMER_SECRET)")
    print("Tools:")
    for name in runtime.registry.names:
        print(f"  - {name}")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")
    print()

    try:
        while True:
            try:
                user_input = input("you> ")
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()
            if trimmed in ("exit", "quit"):
                break
            if not trimmed:
                continue

            try:
                print()
                await repl.handle(trimmed)
                print()
            except Exception as ex:
                logger.error(f"Unhandled error: {ex}")
    finally:
        await runtime.agent.wait_for_background()
        runtime.memory_store.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
