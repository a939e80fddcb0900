"""Conversion of caller-side chat history into the internal message format.

Callers send UI-shaped messages::

    {"id": ..., "role": "user" | "assistant", "content": "...",
     "attachments": [{"name": ..., "contentType": ..., "url": "data:...;base64,..."}],
     "toolInvocations": [{"toolCallId": ..., "toolName": ..., "args": {...}, "result": {...}}]}

Internally every provider receives Anthropic-style block content.
"""

from __future__ import annotations

import json
from typing import Any

from loguru import logger

_BINARY_KINDS = {"image": "image", "audio": "audio"}


def message_text(message: dict[str, Any]) -> str:
    content = message.get("content", "")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part.get("text", "") for part in content if isinstance(part, dict) and part.get("type") == "text"
        )
    return ""


def attachment_block(attachment: dict[str, Any]) -> dict[str, Any] | None:
    """Embed a data-URL attachment as a binary block; unrecognized kinds give None."""
    content_type = str(attachment.get("contentType") or "")
    kind = _BINARY_KINDS.get(content_type.split("/", 1)[0])
    if kind is None:
        logger.debug(f"Dropping attachment of unsupported type {content_type!r}")
        return None
    url = str(attachment.get("url") or "")
    header, sep, data = url.partition(",")
    if not url.startswith("data:") or not sep or ";base64" not in header:
        logger.warning(f"Dropping {kind} attachment {attachment.get('name')!r}: only base64 data URLs are embedded")
        return None
    return {"type": kind, "media_type": content_type, "data": data}


def _user_message(message: dict[str, Any]) -> dict[str, Any] | None:
    text = message_text(message)
    blocks = [b for b in (attachment_block(a) for a in message.get("attachments") or []) if b is not None]
    if not blocks:
        return {"role": "user", "content": text} if text.strip() else None
    content: list[dict[str, Any]] = []
    if text.strip():
        content.append({"type": "text", "text": text})
    content.extend(blocks)
    return {"role": "user", "content": content}


def resolved_invocations(message: dict[str, Any]) -> list[dict[str, Any]]:
    """Tool invocations that carry a result; the rest are dropped."""
    return [
        inv for inv in message.get("toolInvocations") or []
        if isinstance(inv, dict) and inv.get("toolCallId") and "result" in inv
    ]


def _assistant_messages(message: dict[str, Any]) -> list[dict[str, Any]]:
    text = message_text(message)
    invocations = resolved_invocations(message)
    out: list[dict[str, Any]] = []
    if invocations:
        out.append({
            "role": "assistant",
            "content": [
                {"type": "tool_use", "id": inv["toolCallId"], "name": inv.get("toolName", ""), "input": inv.get("args") or {}}
                for inv in invocations
            ],
        })
        out.append({
            "role": "user",
            "content": [
                {
                    "type": "tool_result",
                    "tool_use_id": inv["toolCallId"],
                    "content": json.dumps(inv["result"], default=str),
                }
                for inv in invocations
            ],
        })
    if text.strip():
        out.append({"role": "assistant", "content": [{"type": "text", "text": text}]})
    return out


def normalize_history(history: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert UI messages to internal messages.

    Unresolved tool invocations and empty messages are removed; system and
    tool messages from the caller are ignored.
    """
    out: list[dict[str, Any]] = []
    for message in history:
        role = message.get("role")
        if role == "user":
            converted = _user_message(message)
            if converted is not None:
                out.append(converted)
        elif role == "assistant":
            out.extend(_assistant_messages(message))
    return out


def first_user_text(history: list[dict[str, Any]]) -> str:
    for message in history:
        if message.get("role") == "user":
            return message_text(message)
    return ""


def visible_text(history: list[dict[str, Any]]) -> str:
    return "\n".join(
        f"{m.get('role')}: {message_text(m)}" for m in history if m.get("role") in ("user", "assistant") and message_text(m).strip()
    )
