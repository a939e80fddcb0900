import os
import unittest
from unittest.mock import patch

from analytic_assistant.app_config import parse_app_config, resolve_runtime_env, settings_record
from analytic_assistant.settings import parse_chat_settings


class AppConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        app = parse_app_config({})
        self.assertEqual("anthropic", app.provider_name)
        self.assertEqual("", app.model)
        self.assertEqual(25, app.max_rounds)
        self.assertEqual("local", app.owner_id)
        self.assertIsNone(app.configured_session_id)

    def test_pascal_case_keys(self) -> None:
        app = parse_app_config({
            "Provider": " OpenAI ",
            "Model": "gpt-4o",
            "SandboxTimeoutSeconds": 0,
            "SessionId": "abc",
            "MemoryMaxSessions": "50",
        })
        self.assertEqual("openai", app.provider_name)
        self.assertEqual(0.0, app.sandbox_timeout_seconds)
        self.assertEqual("abc", app.configured_session_id)
        self.assertEqual(50, app.memory_max_sessions)

    def test_fetch_page_size_is_kept_within_store_limits(self) -> None:
        self.assertEqual(100, parse_app_config({"FetchPageSize": 500}).fetch_page_size)
        self.assertEqual(1, parse_app_config({"FetchPageSize": 0}).fetch_page_size)
        self.assertEqual(50, parse_app_config({"FetchPageSize": "50"}).fetch_page_size)

    def test_settings_record_feeds_chat_settings(self) -> None:
        env_vars = {
            "OPENAI_API_KEY": "sk-openai",
            "STORE_URL": "https://shop.example",
            "STORE_CONSUMER_KEY": "ck",
            "STORE_CONSUMER_SECRET": "cs",
        }
        with patch.dict(os.environ, env_vars, clear=True):
            app = parse_app_config({"Provider": "openai"})
            env = resolve_runtime_env(app.provider_name)

        self.assertEqual("OPENAI_API_KEY", env.provider_env_var)
        settings = parse_chat_settings(settings_record(app, env))
        self.assertTrue(settings.is_supported)
        self.assertEqual("gpt-4o-mini", settings.model_id)
        self.assertEqual("https://shop.example", settings.store.url)

    def test_missing_key_leaves_settings_unsupported(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            env = resolve_runtime_env("anthropic")
        settings = parse_chat_settings(settings_record(parse_app_config({}), env))
        self.assertFalse(settings.is_supported)
        self.assertIsNone(settings.store)


if __name__ == "__main__":
    unittest.main()
