"""Normalization of option lists returned by the cascading-filter endpoint."""

from __future__ import annotations

import numbers
from dataclasses import dataclass
from typing import Any, Mapping

from helpers import _normalize_display_name, coerce_option_id
from setups.registry import NUMERIC_DIMENSIONS, RESPONSE_KEYS, FilterDimension

_NAME_KEYS = ("name", "label", "variation")


@dataclass(frozen=True)
class FilterOption:
    """One selectable value of a filter dimension."""

    id: int
    name: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name}


def _option_from_item(item: Any, dimension: FilterDimension) -> FilterOption | None:
    if isinstance(item, Mapping):
        option_id = coerce_option_id(item.get("id"))
        if option_id is None:
            return None
        for key in _NAME_KEYS:
            name = _normalize_display_name(item.get(key))
            if name:
                return FilterOption(option_id, name)
        if dimension in NUMERIC_DIMENSIONS:
            return FilterOption(option_id, str(option_id))
        return None
    if dimension in NUMERIC_DIMENSIONS and not isinstance(item, bool):
        if isinstance(item, numbers.Integral) or (
            isinstance(item, str) and item.strip().isdigit()
        ):
            value = int(item)
            return FilterOption(value, str(value))
    return None


def parse_options(raw: Any, dimension: FilterDimension) -> list[FilterOption]:
    """Return the well-formed, de-duplicated options found in ``raw``."""

    if not isinstance(raw, list):
        return []
    options: list[FilterOption] = []
    seen: set[int] = set()
    for item in raw:
        option = _option_from_item(item, dimension)
        if option is None or option.id in seen:
            continue
        seen.add(option.id)
        options.append(option)
    return options


def extract_dimension_options(
    data: Mapping[str, Any], dimension: FilterDimension
) -> list[FilterOption] | None:
    """Return the options for ``dimension`` or ``None`` when the response omits it."""

    for key in RESPONSE_KEYS[dimension]:
        if key in data and data[key] is not None:
            return parse_options(data[key], dimension)
    return None


def find_option(options: list[FilterOption], option_id: int | None) -> FilterOption | None:
    if option_id is None:
        return None
    for option in options:
        if option.id == option_id:
            return option
    return None


__all__ = [
    "FilterOption",
    "extract_dimension_options",
    "find_option",
    "parse_options",
]
