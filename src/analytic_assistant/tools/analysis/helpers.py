"""Pure helpers injected into analysis scripts alongside the safe builtins."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, date, datetime
from typing import Any

from analytic_assistant.tools.analysis.limits import checked_mul


def add(a: float, b: float) -> float:
    return a + b


def subtract(a: float, b: float) -> float:
    return a - b


def multiply(a: float, b: float) -> float:
    return checked_mul(a, b)


def divide(a: float, b: float) -> float:
    """Division that yields 0 for a zero divisor."""
    return a / b if b != 0 else 0


def average(values: Iterable[float]) -> float:
    items = list(values)
    return sum(items) / len(items) if items else 0


def sort_by(items: Iterable[dict[str, Any]], key: str, desc: bool = False) -> list[dict[str, Any]]:
    """Return a sorted copy. Rows missing ``key`` sort last."""
    rows = list(items)
    present = [item for item in rows if item.get(key) is not None]
    missing = [item for item in rows if item.get(key) is None]
    return sorted(present, key=lambda item: item[key], reverse=desc) + missing


def group_by(items: Iterable[dict[str, Any]], key: str) -> dict[Any, list[dict[str, Any]]]:
    groups: dict[Any, list[dict[str, Any]]] = {}
    for item in items:
        groups.setdefault(item.get(key), []).append(item)
    return groups


def _as_datetime(value: str | date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    # Normalized to naive UTC so mixed inputs can be subtracted.
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC).replace(tzinfo=None)
    return parsed


def format_date(value: str | date | datetime) -> str:
    return _as_datetime(value).strftime("%Y-%m-%d")


def days_between(first: str | date | datetime, second: str | date | datetime) -> float:
    """Absolute number of days between two dates, fractional for datetimes."""
    delta = _as_datetime(second) - _as_datetime(first)
    return abs(delta.total_seconds()) / 86400


HELPERS = {
    "add": add,
    "subtract": subtract,
    "multiply": multiply,
    "divide": divide,
    "average": average,
    "sort_by": sort_by,
    "group_by": group_by,
    "format_date": format_date,
    "days_between": days_between,
}
