import unittest

from analytic_assistant.settings import (
    ANTHROPIC_DEFAULT_MODEL,
    AnthropicSettings,
    OpenAICompatibleSettings,
    UnsupportedProviderSettings,
    parse_chat_settings,
    resolve_provider_settings,
)


class ResolveProviderSettingsTests(unittest.TestCase):
    def test_anthropic_defaults_model(self) -> None:
        settings = resolve_provider_settings("Anthropic", "sk-1")
        self.assertIsInstance(settings, AnthropicSettings)
        self.assertEqual(ANTHROPIC_DEFAULT_MODEL, settings.model_id)

    def test_openai_compatible_profiles(self) -> None:
        google = resolve_provider_settings("gemini", "key", "gemini-1.5-pro")
        self.assertIsInstance(google, OpenAICompatibleSettings)
        self.assertEqual("google", google.provider_id)
        self.assertEqual("gemini-1.5-pro", google.model_id)
        self.assertIn("generativelanguage", google.base_url)

        openai = resolve_provider_settings("openai", "key")
        self.assertIsNone(openai.base_url)
        self.assertEqual("gpt-4o-mini", openai.model_id)

    def test_unknown_provider_is_unsupported(self) -> None:
        settings = resolve_provider_settings("mystery", "key")
        self.assertIsInstance(settings, UnsupportedProviderSettings)
        self.assertIn("Unsupported provider", settings.reason)

    def test_missing_provider_or_key_is_unsupported(self) -> None:
        self.assertIsInstance(resolve_provider_settings(None, "key"), UnsupportedProviderSettings)
        missing_key = resolve_provider_settings("deepseek", "")
        self.assertIsInstance(missing_key, UnsupportedProviderSettings)
        self.assertIn("API key", missing_key.reason)


class ParseChatSettingsTests(unittest.TestCase):
    def test_store_credentials_need_all_three_fields(self) -> None:
        full = parse_chat_settings({
            "provider": "anthropic",
            "providerKey": "sk",
            "wooCommerceUrl": " https://shop.example ",
            "consumerKey": "ck",
            "consumerSecret": "cs",
        })
        self.assertEqual("https://shop.example", full.store.url)

        partial = parse_chat_settings({"provider": "anthropic", "providerKey": "sk", "wooCommerceUrl": "https://x"})
        self.assertIsNone(partial.store)

    def test_record_fingerprints_the_key(self) -> None:
        settings = parse_chat_settings({"provider": "openai", "providerKey": "sk-secret", "wooCommerceUrl": "u",
                                        "consumerKey": "ck", "consumerSecret": "cs"})
        record = settings.to_record()
        self.assertEqual("openai", record["provider"])
        self.assertTrue(record["credential_ref"].startswith("sha256:"))
        self.assertNotIn("sk-secret", str(record))
        self.assertNotIn("cs", record.values())
        self.assertEqual("u", record["store_url"])

    def test_unsupported_settings_record_has_no_credential(self) -> None:
        settings = parse_chat_settings(None)
        self.assertFalse(settings.is_supported)
        self.assertNotIn("credential_ref", settings.to_record())


if __name__ == "__main__":
    unittest.main()
