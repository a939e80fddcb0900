from __future__ import annotations

import copy
from typing import Any


def build_table(
    *,
    title: str | None,
    columns: list[dict[str, str]],
    rows: list[dict[str, Any]],
    summary: str | None = None,
) -> dict[str, Any]:
    """Normalize a table descriptor. Cell values are passed through untouched."""
    return {
        "title": title,
        "columns": [{"key": str(col["key"]), "header": str(col["header"])} for col in columns],
        "rows": copy.deepcopy(rows),
        "summary": summary,
    }
