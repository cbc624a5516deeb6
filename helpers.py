"""General-purpose helper utilities shared across the application."""

from __future__ import annotations

import numbers
from typing import Any

import pandas as pd


__all__ = [
    "_normalize_display_name",
    "coerce_option_id",
    "has_text_value",
]


def has_text_value(value: Any) -> bool:
    """Return ``True`` when ``value`` contains non-empty, non-NaN text."""

    if value is None:
        return False
    if isinstance(value, str):
        text = value.strip()
    else:
        try:
            if pd.isna(value):
                return False
        except (TypeError, ValueError):
            pass
        text = str(value).strip()
    if not text:
        return False
    if text.lower() == "nan":
        return False
    return True


def coerce_option_id(value: Any) -> int | None:
    """Normalize API and form identifiers to ``int`` or ``None`` when empty/invalid."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, numbers.Integral):
        return int(value)
    if isinstance(value, numbers.Real):
        try:
            if pd.isna(value):
                return None
        except (TypeError, ValueError):
            pass
        if float(value).is_integer():
            return int(value)
        return None
    text = str(value).strip()
    if not text or text.lower() == "nan":
        return None
    if text.endswith(".0") and text[:-2].isdigit():
        text = text[:-2]
    try:
        return int(text)
    except ValueError:
        return None


def _normalize_display_name(value: Any) -> str:
    """Return ``value`` as a single-spaced display string."""

    if not has_text_value(value):
        return ""
    return " ".join(str(value).split())

