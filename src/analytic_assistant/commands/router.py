from __future__ import annotations

from collections.abc import Awaitable, Callable


class CommandRouter:
    def __init__(
        self,
        *,
        on_help: Callable[[], Awaitable[None]],
        on_suggest: Callable[[], Awaitable[None]],
        on_usage: Callable[[str], Awaitable[None]],
        on_new: Callable[[], Awaitable[None]],
        on_unknown: Callable[[str], None],
    ) -> None:
        self._on_help = on_help
        self._on_suggest = on_suggest
        self._on_usage = on_usage
        self._on_new = on_new
        self._on_unknown = on_unknown

    async def try_handle(self, user_message: str) -> bool:
        trimmed = user_message.strip()
        if not trimmed.startswith("/"):
            return False

        if trimmed == "/help":
            await self._on_help()
            return True
        if trimmed == "/suggest":
            await self._on_suggest()
            return True
        if trimmed.startswith("/usage"):
            await self._on_usage(trimmed)
            return True
        if trimmed == "/new":
            await self._on_new()
            return True

        self._on_unknown(trimmed)
        return True
