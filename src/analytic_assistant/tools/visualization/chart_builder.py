from __future__ import annotations

import copy
import math
import re
from typing import Any, Literal

ChartKind = Literal["line", "bar", "pie", "doughnut", "radar", "polarArea"]

CHART_KINDS: tuple[str, ...] = ("line", "bar", "pie", "doughnut", "radar", "polarArea")

DEFAULT_COLORS: tuple[str, ...] = (
    "#4ecdc4",
    "#45b7d1",
    "#96ceb4",
    "#feca57",
    "#ff9ff3",
    "#54a0ff",
    "#5f27cd",
    "#00d2d3",
    "#ff9f43",
    "#ee5a24",
)

_RADIAL_KINDS = ("pie", "doughnut")
_NUMBER_PREFIX = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|[+-]?Infinity)")


def parse_number(value: Any) -> float | None:
    """Lenient float parse: leading numeric prefix of a string, None when non-numeric.

    ``"12.5 USD"`` gives 12.5, ``"abc"``, booleans, None and NaN give None.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        match = _NUMBER_PREFIX.match(str(value))
        if match is None:
            return None
        token = match.group(1)
        number = float(token.replace("Infinity", "inf"))
    if math.isnan(number):
        return None
    return number


def _dataset(kind: str, index: int, label: str, values: list[float], label_count: int) -> dict[str, Any]:
    color = DEFAULT_COLORS[index % len(DEFAULT_COLORS)]
    background: str | list[str]
    if kind in _RADIAL_KINDS:
        background = list(DEFAULT_COLORS[:label_count])
    else:
        background = f"{color}33"
    return {
        "label": label,
        "data": values,
        "backgroundColor": background,
        "borderColor": color,
        "borderWidth": 2,
        "fill": kind != "line",
        "tension": 0.4 if kind == "line" else 0,
    }


def build_chart_config(
    *,
    title: str,
    kind: str,
    rows: list[dict[str, Any]],
    category_field: str,
    value_field: str,
    series_label: str | None = None,
) -> dict[str, Any]:
    """Project ``rows`` into a chart descriptor.

    Labels keep every row in order. Values are parsed leniently and
    non-numeric entries are dropped, so the series can be shorter than the
    label list when the data is dirty.
    """
    if kind not in CHART_KINDS:
        raise ValueError(f"Unsupported chart type '{kind}'. Expected one of: {', '.join(CHART_KINDS)}")

    labels = [copy.deepcopy(row.get(category_field)) for row in rows]
    values = [n for n in (parse_number(row.get(value_field)) for row in rows) if n is not None]

    options: dict[str, Any] = {
        "responsive": True,
        "maintainAspectRatio": False,
        "plugins": {
            "legend": {"display": True, "position": "top"},
            "title": {"display": bool(title), "text": title},
        },
    }
    if kind not in _RADIAL_KINDS:
        options["scales"] = {
            "y": {"beginAtZero": True, "title": {"display": True, "text": "Value"}},
            "x": {"title": {"display": True, "text": "Category"}},
        }

    return {
        "type": kind,
        "title": title,
        "data": {
            "labels": labels,
            "datasets": [_dataset(kind, 0, series_label or value_field, values, len(labels))],
        },
        "options": options,
    }
