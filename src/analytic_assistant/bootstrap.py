from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from analytic_assistant.agent import AnalystAgent
from analytic_assistant.agent_config import AgentConfig
from analytic_assistant.app_config import AppConfig, RuntimeEnv, settings_record
from analytic_assistant.logging_config import setup_logging
from analytic_assistant.memory import ConversationStore, MemoryStore, prune_memory
from analytic_assistant.services.suggestion_service import SuggestionService
from analytic_assistant.settings import ChatSettings, parse_chat_settings
from analytic_assistant.tool_registry import ToolRegistry, build_registry


@dataclass
class AppRuntime:
    agent: AnalystAgent
    conversations: ConversationStore
    memory_store: MemoryStore
    suggestions: SuggestionService
    registry: ToolRegistry
    settings: ChatSettings
    owner_id: str
    log_descriptions: list[str]


async def bootstrap_runtime(app: AppConfig, env: RuntimeEnv) -> AppRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    registry = build_registry(
        sandbox_timeout_seconds=app.sandbox_timeout_seconds,
        fetch_page_size=app.fetch_page_size,
    )

    db_path = Path(app.memory_db_path)
    if app.memory_db_path != ":memory:" and not db_path.is_absolute():
        db_path = Path.cwd() / db_path
    memory_store = MemoryStore(str(db_path) if app.memory_db_path != ":memory:" else ":memory:")
    prune_memory(
        memory_store,
        max_sessions=app.memory_max_sessions,
        retention_days=app.memory_retention_days,
    )
    conversations = ConversationStore(memory_store)

    agent = AnalystAgent(
        AgentConfig(
            registry=registry,
            gateway=conversations,
            max_tokens=app.max_tokens,
            temperature=app.temperature,
            max_rounds=app.max_rounds,
            max_tool_result_chars=app.max_tool_result_chars,
            store_timeout_seconds=app.store_request_timeout_seconds,
        )
    )

    return AppRuntime(
        agent=agent,
        conversations=conversations,
        memory_store=memory_store,
        suggestions=SuggestionService(conversations, owner_id=app.owner_id),
        registry=registry,
        settings=parse_chat_settings(settings_record(app, env)),
        owner_id=app.owner_id,
        log_descriptions=log_descriptions,
    )
