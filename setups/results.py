"""Lap-time ordering and pagination of setup search results."""

from __future__ import annotations

import math
import numbers
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

import pandas as pd

LAP_TIME_MS_KEYS = ("lap_time_ms", "lap_time_millis", "best_lap_ms")
LAP_TIME_KEYS = ("lap_time", "lapTime", "best_lap_time", "best_lap")
RESULT_ID_KEYS = ("id", "setup_id", "product_id")

_LAP_TIME_PATTERN = re.compile(r"^(\d+):([0-5]?\d)(?:\.(\d{1,3}))?$")


def _as_milliseconds(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return None
    number = float(value)
    if math.isnan(number) or number < 0:
        return None
    return number


def parse_lap_time_text(value: str) -> float | None:
    """Return milliseconds for ``M:SS.mmm`` or ``M:SS``; ``None`` otherwise."""

    match = _LAP_TIME_PATTERN.match(value.strip())
    if match is None:
        return None
    minutes, seconds, fraction = match.groups()
    millis = int((fraction or "").ljust(3, "0")) if fraction else 0
    return float((int(minutes) * 60 + int(seconds)) * 1000 + millis)


def parse_lap_time(item: Mapping[str, Any]) -> float:
    """Return the sort key of a result in milliseconds; ``inf`` when unusable."""

    for key in LAP_TIME_MS_KEYS:
        millis = _as_milliseconds(item.get(key))
        if millis is not None:
            return millis
    for key in LAP_TIME_KEYS:
        value = item.get(key)
        if value is None:
            continue
        if isinstance(value, str):
            parsed = parse_lap_time_text(value)
        else:
            parsed = _as_milliseconds(value)
        return parsed if parsed is not None else math.inf
    return math.inf


def result_id(item: Mapping[str, Any]) -> Any:
    for key in RESULT_ID_KEYS:
        value = item.get(key)
        if value is not None:
            return value
    return None


def sort_results(items: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Return ``items`` sorted ascending by lap time, stable, unparseable last."""

    if not items:
        return []
    frame = pd.DataFrame(
        {
            "position": range(len(items)),
            "lap_ms": [parse_lap_time(item) for item in items],
        }
    )
    frame = frame.sort_values(["lap_ms", "position"], kind="mergesort")
    return [dict(items[position]) for position in frame["position"].tolist()]


@dataclass
class ResultsPage:
    items: list[dict[str, Any]] = field(default_factory=list)
    page: int = 1
    total_pages: int = 1
    total: int = 0
    display_from: int = 0
    display_to: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": self.items,
            "page": self.page,
            "total_pages": self.total_pages,
            "total": self.total,
            "display_from": self.display_from,
            "display_to": self.display_to,
        }


def total_pages(total: int, page_size: int) -> int:
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    return max(1, math.ceil(total / page_size))


def clamp_page(page: Any, total: int, page_size: int) -> int:
    try:
        number = int(page)
    except (TypeError, ValueError):
        number = 1
    return min(max(number, 1), total_pages(total, page_size))


def paginate(items: Sequence[dict[str, Any]], page: Any, page_size: int) -> ResultsPage:
    """Return the 1-based ``page`` slice of ``items``; out-of-range pages are clamped."""

    total = len(items)
    number = clamp_page(page, total, page_size)
    start = (number - 1) * page_size
    chunk = list(items[start:start + page_size])
    return ResultsPage(
        items=chunk,
        page=number,
        total_pages=total_pages(total, page_size),
        total=total,
        display_from=start + 1 if chunk else 0,
        display_to=start + len(chunk),
    )


def visible_page_numbers(page: int, pages: int, max_visible: int = 7) -> list[int]:
    """Return the window of page numbers shown by the pager, centred on ``page``."""

    if pages <= max_visible:
        return list(range(1, pages + 1))
    start = max(1, page - max_visible // 2)
    end = min(pages, start + max_visible - 1)
    start = max(1, end - max_visible + 1)
    return list(range(start, end + 1))


__all__ = [
    "ResultsPage",
    "clamp_page",
    "paginate",
    "parse_lap_time",
    "parse_lap_time_text",
    "result_id",
    "sort_results",
    "total_pages",
    "visible_page_numbers",
]
