from __future__ import annotations

import json
import math
import sqlite3
from typing import Any, Protocol
from uuid import uuid4

from loguru import logger

from analytic_assistant.errors import PersistenceError
from analytic_assistant.memory.models import MESSAGE_FLAGS, PLACEHOLDER_TITLE, MessageRecord, SessionRecord
from analytic_assistant.memory.store import MemoryStore, utc_now
from analytic_assistant.usage.ledger import UsageRecord

USAGE_PAGE_SIZE = 20


class PersistenceGateway(Protocol):
    async def get_session(self, session_id: str) -> SessionRecord | None: ...

    async def upsert_session(self, session_id: str, *, owner_id: str, title: str, settings: dict[str, Any]) -> None: ...

    async def insert_messages(self, session_id: str, messages: list[MessageRecord]) -> None: ...

    async def increment_usage(
        self,
        session_id: str,
        *,
        prompt_tokens: int,
        completion_tokens: int,
        cost_usd: float | None,
    ) -> None: ...

    async def log_usage(self, record: UsageRecord) -> None: ...


class ConversationStore:
    """SQLite-backed persistence for sessions, messages and usage."""

    def __init__(self, store: MemoryStore):
        self._store = store

    async def get_session(self, session_id: str) -> SessionRecord | None:
        row = self._store.execute(
            "SELECT * FROM sessions WHERE id = ? LIMIT 1",
            (session_id,),
        ).fetchone()
        if row is None:
            return None
        return self._session_from_row(row)

    async def list_sessions(self, owner_id: str, *, limit: int = 50) -> list[SessionRecord]:
        rows = self._store.execute(
            """
            SELECT *
            FROM sessions
            WHERE owner_id = ?
            ORDER BY updated_at DESC, created_at DESC
            LIMIT ?
            """,
            (owner_id, max(1, limit)),
        ).fetchall()
        return [self._session_from_row(row) for row in rows]

    async def upsert_session(self, session_id: str, *, owner_id: str, title: str, settings: dict[str, Any]) -> None:
        now = utc_now()
        try:
            with self._store.transaction():
                self._store.execute(
                    """
                    INSERT INTO sessions (id, owner_id, title, settings_json, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        title = excluded.title,
                        settings_json = excluded.settings_json,
                        updated_at = excluded.updated_at
                    """,
                    (
                        session_id,
                        owner_id,
                        title.strip() or PLACEHOLDER_TITLE,
                        json.dumps(settings, ensure_ascii=True),
                        now,
                        now,
                    ),
                )
        except sqlite3.Error as ex:
            raise PersistenceError(f"Failed to upsert session {session_id}: {ex}") from ex

    async def insert_messages(self, session_id: str, messages: list[MessageRecord]) -> None:
        if not messages:
            return
        now = utc_now()
        try:
            with self._store.transaction():
                row = self._store.execute(
                    "SELECT COALESCE(MAX(seq), 0) AS max_seq FROM messages WHERE session_id = ?",
                    (session_id,),
                ).fetchone()
                next_seq = int(row["max_seq"]) + 1
                params: list[tuple[Any, ...]] = []
                for offset, message in enumerate(messages):
                    params.append(
                        (
                            message.id or str(uuid4()),
                            session_id,
                            next_seq + offset,
                            message.role,
                            message.content,
                            json.dumps(message.attachments, ensure_ascii=True, default=str),
                            json.dumps(message.tool_invocations, ensure_ascii=True, default=str),
                            1 if message.favorite else 0,
                            1 if message.bookmark else 0,
                            message.created_at or now,
                        )
                    )
                self._store.executemany(
                    """
                    INSERT INTO messages (
                        id, session_id, seq, role, content, attachments_json,
                        tool_invocations_json, favorite, bookmark, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    params,
                )
                self._store.execute(
                    "UPDATE sessions SET updated_at = ? WHERE id = ?",
                    (now, session_id),
                )
        except sqlite3.Error as ex:
            raise PersistenceError(f"Failed to insert messages for session {session_id}: {ex}") from ex

    async def increment_usage(
        self,
        session_id: str,
        *,
        prompt_tokens: int,
        completion_tokens: int,
        cost_usd: float | None,
    ) -> None:
        # Single relative UPDATE; counters only ever grow.
        try:
            with self._store.transaction():
                self._store.execute(
                    """
                    UPDATE sessions SET
                        prompt_tokens = prompt_tokens + ?,
                        completion_tokens = completion_tokens + ?,
                        cost_usd = cost_usd + ?,
                        cost_unknown = MAX(cost_unknown, ?)
                    WHERE id = ?
                    """,
                    (
                        max(0, prompt_tokens),
                        max(0, completion_tokens),
                        max(0.0, cost_usd or 0.0),
                        1 if cost_usd is None else 0,
                        session_id,
                    ),
                )
        except sqlite3.Error as ex:
            raise PersistenceError(f"Failed to increment usage for session {session_id}: {ex}") from ex

    async def log_usage(self, record: UsageRecord) -> None:
        try:
            with self._store.transaction():
                self._store.execute(
                    """
                    INSERT INTO usage_log (
                        id, owner_id, session_id, provider, model,
                        prompt_tokens, completion_tokens, cost_usd, source, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        str(uuid4()),
                        record.owner_id,
                        record.session_id,
                        record.provider,
                        record.model,
                        record.prompt_tokens,
                        record.completion_tokens,
                        record.cost_usd,
                        record.source,
                        record.created_at or utc_now(),
                    ),
                )
        except sqlite3.Error as ex:
            raise PersistenceError(f"Failed to log usage: {ex}") from ex

    async def list_usage(
        self,
        owner_id: str,
        *,
        page: int = 1,
        page_size: int = USAGE_PAGE_SIZE,
    ) -> tuple[list[UsageRecord], int]:
        """Return one page of the owner's usage log (newest first) and the total page count."""
        page = max(1, page)
        page_size = max(1, page_size)
        count_row = self._store.execute(
            "SELECT COUNT(*) AS c FROM usage_log WHERE owner_id = ?",
            (owner_id,),
        ).fetchone()
        total = int(count_row["c"]) if count_row is not None else 0
        rows = self._store.execute(
            """
            SELECT *
            FROM usage_log
            WHERE owner_id = ?
            ORDER BY created_at DESC, rowid DESC
            LIMIT ? OFFSET ?
            """,
            (owner_id, page_size, (page - 1) * page_size),
        ).fetchall()
        records = [
            UsageRecord(
                owner_id=str(row["owner_id"]),
                session_id=row["session_id"],
                provider=str(row["provider"]),
                model=str(row["model"]),
                prompt_tokens=int(row["prompt_tokens"]),
                completion_tokens=int(row["completion_tokens"]),
                cost_usd=row["cost_usd"],
                source=str(row["source"]),
                created_at=str(row["created_at"]),
            )
            for row in rows
        ]
        return records, math.ceil(total / page_size)

    async def load_messages(self, session_id: str) -> list[MessageRecord]:
        rows = self._store.execute(
            """
            SELECT *
            FROM messages
            WHERE session_id = ?
            ORDER BY seq ASC
            """,
            (session_id,),
        ).fetchall()
        return [
            MessageRecord(
                id=str(row["id"]),
                role=str(row["role"]),
                content=str(row["content"]),
                attachments=self._parse_list(row["attachments_json"]),
                tool_invocations=self._parse_list(row["tool_invocations_json"]),
                favorite=bool(row["favorite"]),
                bookmark=bool(row["bookmark"]),
                session_id=str(row["session_id"]),
                seq=int(row["seq"]),
                created_at=str(row["created_at"]),
            )
            for row in rows
        ]

    async def set_message_flag(self, message_id: str, flag: str, value: bool) -> None:
        if flag not in MESSAGE_FLAGS:
            raise ValueError(f"Unknown message flag '{flag}'. Expected one of: {', '.join(MESSAGE_FLAGS)}")
        cursor = self._store.execute(
            f"UPDATE messages SET {flag} = ? WHERE id = ?",
            (1 if value else 0, message_id),
        )
        self._store.commit()
        if cursor.rowcount == 0:
            raise ValueError(f"Message does not exist: {message_id}")

    def _session_from_row(self, row: sqlite3.Row) -> SessionRecord:
        return SessionRecord(
            id=str(row["id"]),
            owner_id=str(row["owner_id"]),
            title=str(row["title"]),
            settings=self._parse_metadata(row["settings_json"]),
            prompt_tokens=int(row["prompt_tokens"]),
            completion_tokens=int(row["completion_tokens"]),
            cost_usd=float(row["cost_usd"]),
            cost_unknown=bool(row["cost_unknown"]),
            created_at=str(row["created_at"]),
            updated_at=str(row["updated_at"]),
        )

    def _parse_metadata(self, metadata_json: str) -> dict:
        try:
            parsed = json.loads(metadata_json)
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable session settings JSON")
        return {}

    def _parse_list(self, raw: str) -> list[dict[str, Any]]:
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, list):
                return parsed
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable message JSON column")
        return []
