from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class TextDelta:
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "text-delta", "text": self.text}


@dataclass(frozen=True)
class ToolStatus:
    status: str  # "requested" | "resolved"
    tool_call_id: str
    name: str
    args: dict[str, Any] | None = None
    result: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": "tool-status",
            "status": self.status,
            "toolCallId": self.tool_call_id,
            "name": self.name,
        }
        if self.status == "requested":
            payload["args"] = self.args
        else:
            payload["result"] = self.result
        return payload


@dataclass(frozen=True)
class Done:
    finish_reason: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "done", "finishReason": self.finish_reason}


@dataclass(frozen=True)
class ErrorEvent:
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "error", "message": self.message}


StreamEvent = Union[TextDelta, ToolStatus, Done, ErrorEvent]
