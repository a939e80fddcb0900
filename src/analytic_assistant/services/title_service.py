from __future__ import annotations

import re

from loguru import logger

from analytic_assistant.provider import LLMProvider
from analytic_assistant.usage.ledger import UsageLedger, UsageSource

MAX_TITLE_CHARS = 80

_TITLE_SYSTEM_PROMPT = """\
- you will generate a short title based on the first message a user begins a conversation with
- ensure it is not more than 80 characters long
- the title should be a summary of the user's message
- do not use quotes or colons"""


def clean_title(raw: str) -> str:
    title = re.sub(r"[\"'`:]", "", raw or "")
    title = " ".join(title.split())
    if len(title) > MAX_TITLE_CHARS:
        title = title[: MAX_TITLE_CHARS - 3].rstrip() + "..."
    return title


class TitleService:
    def __init__(self, *, max_tokens: int = 64, temperature: float = 0.3):
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def generate(self, provider: LLMProvider, model: str, text: str, ledger: UsageLedger) -> str | None:
        """One secondary model call. Returns None when there is nothing to title or the model gave nothing usable."""
        if not text.strip():
            return None
        completion = await provider.create_message(
            model,
            self._max_tokens,
            self._temperature,
            [{"role": "user", "content": text}],
            system_prompt=_TITLE_SYSTEM_PROMPT,
        )
        ledger.add(completion.usage, UsageSource.TITLE_GENERATION)
        title = clean_title(completion.text)
        logger.debug(f"Generated title: {title!r}")
        return title or None
