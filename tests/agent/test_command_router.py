import asyncio
import unittest

from analytic_assistant.commands.router import CommandRouter


class CommandRouterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.calls: list[tuple] = []

        async def on_help() -> None:
            self.calls.append(("help",))

        async def on_suggest() -> None:
            self.calls.append(("suggest",))

        async def on_usage(command: str) -> None:
            self.calls.append(("usage", command))

        async def on_new() -> None:
            self.calls.append(("new",))

        def on_unknown(command: str) -> None:
            self.calls.append(("unknown", command))

        self.router = CommandRouter(
            on_help=on_help,
            on_suggest=on_suggest,
            on_usage=on_usage,
            on_new=on_new,
            on_unknown=on_unknown,
        )

    def _handle(self, text: str) -> bool:
        return asyncio.run(self.router.try_handle(text))

    def test_plain_text_is_not_a_command(self) -> None:
        self.assertFalse(self._handle("show me recent orders"))
        self.assertEqual([], self.calls)

    def test_known_commands_dispatch(self) -> None:
        for text in ("/help", " /suggest ", "/usage 2", "/new"):
            self.assertTrue(self._handle(text))
        self.assertEqual([("help",), ("suggest",), ("usage", "/usage 2"), ("new",)], self.calls)

    def test_unknown_command_is_reported(self) -> None:
        self.assertTrue(self._handle("/voice start"))
        self.assertEqual([("unknown", "/voice start")], self.calls)


if __name__ == "__main__":
    unittest.main()
