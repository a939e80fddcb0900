"""Per-turn chat settings.

The calling layer hands over a loose record (``provider``, ``providerKey``,
``model``, ``wooCommerceUrl``, ...). It is parsed once into a tagged union so
that an unsupported provider is a branch the caller checks, not a string
comparison buried in the model factory.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Union

ANTHROPIC_DEFAULT_MODEL = "claude-sonnet-4-5-20250929"


@dataclass(frozen=True)
class _OpenAICompatibleProfile:
    base_url: str | None
    default_model: str


_OPENAI_COMPATIBLE: dict[str, _OpenAICompatibleProfile] = {
    "openai": _OpenAICompatibleProfile(None, "gpt-4o-mini"),
    "google": _OpenAICompatibleProfile(
        "https://generativelanguage.googleapis.com/v1beta/openai/", "gemini-2.0-flash"
    ),
    "openrouter": _OpenAICompatibleProfile("https://openrouter.ai/api/v1", "google/gemini-flash-1.5"),
    "deepseek": _OpenAICompatibleProfile("https://api.deepseek.com", "deepseek-chat"),
}

_PROVIDER_ALIASES = {"gemini": "google"}

SUPPORTED_PROVIDERS = ("anthropic", *_OPENAI_COMPATIBLE)


def _fingerprint(secret: str) -> str:
    return "sha256:" + hashlib.sha256(secret.encode("utf-8")).hexdigest()[:12]


@dataclass(frozen=True)
class AnthropicSettings:
    api_key: str
    model_id: str = ANTHROPIC_DEFAULT_MODEL

    @property
    def provider_id(self) -> str:
        return "anthropic"


@dataclass(frozen=True)
class OpenAICompatibleSettings:
    provider_id: str
    api_key: str
    model_id: str
    base_url: str | None = None


@dataclass(frozen=True)
class UnsupportedProviderSettings:
    provider_id: str
    reason: str
    model_id: str = ""


ProviderSettings = Union[AnthropicSettings, OpenAICompatibleSettings, UnsupportedProviderSettings]


@dataclass(frozen=True)
class StoreCredentials:
    url: str
    consumer_key: str
    consumer_secret: str


@dataclass(frozen=True)
class ChatSettings:
    provider: ProviderSettings
    store: StoreCredentials | None = None

    @property
    def provider_id(self) -> str:
        return self.provider.provider_id

    @property
    def model_id(self) -> str:
        return self.provider.model_id

    @property
    def is_supported(self) -> bool:
        return not isinstance(self.provider, UnsupportedProviderSettings)

    def to_record(self) -> dict:
        """Settings as persisted on the session. Secrets are reduced to a fingerprint."""
        record: dict = {
            "provider": self.provider_id,
            "model": self.model_id,
        }
        if not isinstance(self.provider, UnsupportedProviderSettings):
            record["credential_ref"] = _fingerprint(self.provider.api_key)
        if self.store is not None:
            record["store_url"] = self.store.url
        return record


def resolve_provider_settings(provider: str | None, api_key: str | None, model: str | None = None) -> ProviderSettings:
    name = (provider or "").strip().lower()
    name = _PROVIDER_ALIASES.get(name, name)
    model = (model or "").strip()

    if not name:
        return UnsupportedProviderSettings(provider_id="", reason="AI provider is missing from settings.")
    if name not in SUPPORTED_PROVIDERS:
        return UnsupportedProviderSettings(
            provider_id=name,
            reason=f"Unsupported provider: {name!r}. Supported: {', '.join(SUPPORTED_PROVIDERS)}",
            model_id=model,
        )
    if not api_key:
        return UnsupportedProviderSettings(
            provider_id=name,
            reason=f"API key for provider {name!r} is missing from settings.",
            model_id=model,
        )

    if name == "anthropic":
        return AnthropicSettings(api_key=api_key, model_id=model or ANTHROPIC_DEFAULT_MODEL)

    profile = _OPENAI_COMPATIBLE[name]
    return OpenAICompatibleSettings(
        provider_id=name,
        api_key=api_key,
        model_id=model or profile.default_model,
        base_url=profile.base_url,
    )


def parse_chat_settings(raw: dict | None) -> ChatSettings:
    raw = raw or {}
    provider = resolve_provider_settings(raw.get("provider"), raw.get("providerKey"), raw.get("model"))

    store: StoreCredentials | None = None
    url = str(raw.get("wooCommerceUrl") or "").strip()
    key = str(raw.get("consumerKey") or "").strip()
    secret = str(raw.get("consumerSecret") or "").strip()
    if url and key and secret:
        store = StoreCredentials(url=url, consumer_key=key, consumer_secret=secret)

    return ChatSettings(provider=provider, store=store)
