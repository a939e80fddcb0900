from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from analytic_assistant.tools.store.pagination import clamp_page_size


_PROVIDER_ENV_VARS = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "google": "GOOGLE_API_KEY",
    "gemini": "GOOGLE_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
}


@dataclass
class RuntimeEnv:
    provider_api_key: str
    provider_env_var: str
    store_url: str | None
    store_consumer_key: str | None
    store_consumer_secret: str | None


@dataclass
class AppConfig:
    provider_name: str
    model: str
    max_tokens: int
    temperature: float
    max_rounds: int
    max_tool_result_chars: int
    sandbox_timeout_seconds: float
    fetch_page_size: int
    store_request_timeout_seconds: float
    memory_db_path: str
    memory_max_sessions: int
    memory_retention_days: int
    owner_id: str
    configured_session_id: str | None
    log_level: str
    log_consumers: list | None


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def parse_app_config(config: dict) -> AppConfig:
    return AppConfig(
        provider_name=str(config.get("Provider", "anthropic")).strip().lower(),
        model=str(config.get("Model") or "").strip(),
        max_tokens=int(config.get("MaxTokens", 8192)),
        temperature=float(config.get("Temperature", 1.0)),
        max_rounds=int(config.get("MaxRounds", 25)),
        max_tool_result_chars=int(config.get("MaxToolResultChars", 40_000)),
        sandbox_timeout_seconds=float(config.get("SandboxTimeoutSeconds", 30)),
        fetch_page_size=clamp_page_size(config.get("FetchPageSize", 100)),
        store_request_timeout_seconds=float(config.get("StoreRequestTimeoutSeconds", 30)),
        memory_db_path=str(config.get("MemoryDbPath", ".analytic_assistant/memory.db")),
        memory_max_sessions=int(config.get("MemoryMaxSessions", 200)),
        memory_retention_days=int(config.get("MemoryRetentionDays", 30)),
        owner_id=str(config.get("OwnerId", "local")).strip() or "local",
        configured_session_id=str(config.get("SessionId", "")).strip() or None,
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env(provider_name: str) -> RuntimeEnv:
    provider_env_var = _PROVIDER_ENV_VARS.get(provider_name, "ANTHROPIC_API_KEY")
    return RuntimeEnv(
        provider_api_key=os.environ.get(provider_env_var, ""),
        provider_env_var=provider_env_var,
        store_url=os.environ.get("STORE_URL"),
        store_consumer_key=os.environ.get("STORE_CONSUMER_KEY"),
        store_consumer_secret=os.environ.get("STORE_CONSUMER_SECRET"),
    )


def settings_record(app: AppConfig, env: RuntimeEnv) -> dict:
    """The loose per-turn settings record the agent accepts, built from local config."""
    return {
        "provider": app.provider_name,
        "providerKey": env.provider_api_key,
        "model": app.model,
        "wooCommerceUrl": env.store_url or "",
        "consumerKey": env.store_consumer_key or "",
        "consumerSecret": env.store_consumer_secret or "",
    }
