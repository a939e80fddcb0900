from __future__ import annotations

from datetime import UTC, datetime, timedelta

from loguru import logger

from analytic_assistant.memory.store import MemoryStore


def prune_memory(
    store: MemoryStore,
    *,
    max_sessions: int,
    retention_days: int,
) -> int:
    """Delete stale sessions and any beyond the ``max_sessions`` most recent. Returns the number removed."""
    now = datetime.now(UTC)
    cutoff = (now - timedelta(days=max(1, retention_days))).isoformat(timespec="seconds")

    removed = store.execute(
        "DELETE FROM sessions WHERE updated_at < ?",
        (cutoff,),
    ).rowcount

    if max_sessions > 0:
        overflow_sessions = store.execute(
            """
            SELECT id
            FROM sessions
            ORDER BY updated_at DESC
            LIMIT -1 OFFSET ?
            """,
            (max_sessions,),
        ).fetchall()
        if overflow_sessions:
            store.executemany(
                "DELETE FROM sessions WHERE id = ?",
                [(str(row["id"]),) for row in overflow_sessions],
            )
            removed += len(overflow_sessions)

    store.commit()
    if removed:
        logger.info(f"Pruned {removed} session(s) from memory")
    return removed
