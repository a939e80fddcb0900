from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

PLACEHOLDER_TITLE = "New Conversation"
MESSAGE_FLAGS = ("favorite", "bookmark")


@dataclass(frozen=True)
class SessionRecord:
    id: str
    owner_id: str
    title: str
    settings: dict[str, Any]
    prompt_tokens: int
    completion_tokens: int
    cost_usd: float
    cost_unknown: bool
    created_at: str
    updated_at: str

    @property
    def has_placeholder_title(self) -> bool:
        return not self.title.strip() or self.title == PLACEHOLDER_TITLE


@dataclass
class MessageRecord:
    id: str
    role: str
    content: str
    attachments: list[dict[str, Any]] = field(default_factory=list)
    tool_invocations: list[dict[str, Any]] = field(default_factory=list)
    favorite: bool = False
    bookmark: bool = False
    session_id: str = ""
    seq: int = 0
    created_at: str = ""

    def to_ui_message(self) -> dict[str, Any]:
        """Shape used by callers to rebuild chat history."""
        message: dict[str, Any] = {"id": self.id, "role": self.role, "content": self.content}
        if self.attachments:
            message["attachments"] = list(self.attachments)
        if self.tool_invocations:
            message["toolInvocations"] = list(self.tool_invocations)
        return message
