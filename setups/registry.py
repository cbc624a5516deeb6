"""Filter dimensions and the fixed cascade orderings per catalog category."""

from __future__ import annotations

from enum import Enum
from typing import Iterable

import config


class FilterDimension(str, Enum):
    """A filterable attribute of a setup."""

    CLASS = "class"
    CAR = "car"
    TRACK = "track"
    SEASON = "season"
    WEEK = "week"
    VARIATION = "variation"
    SERIES = "series"
    YEAR = "year"
    VERSION = "version"

    @classmethod
    def parse(cls, value: object) -> "FilterDimension | None":
        """Return the dimension named by ``value`` (case-insensitive) or ``None``."""

        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        try:
            return cls(text)
        except ValueError:
            return None


D = FilterDimension

RICH_ORDER: tuple[FilterDimension, ...] = (
    D.CLASS,
    D.CAR,
    D.TRACK,
    D.VARIATION,
    D.SEASON,
    D.WEEK,
    D.SERIES,
    D.YEAR,
)
SIMPLE_ORDER: tuple[FilterDimension, ...] = (D.CLASS, D.CAR, D.TRACK, D.VERSION)

# Body keys understood by the cascading-filter and search endpoints.
REQUEST_KEYS: dict[FilterDimension, str] = {
    D.CLASS: "class_id",
    D.CAR: "car_id",
    D.TRACK: "track_id",
    D.VARIATION: "variation_id",
    D.SEASON: "season_id",
    D.WEEK: "week",
    D.SERIES: "series_id",
    D.YEAR: "year",
    D.VERSION: "version_id",
}

# Keys the API has been seen to use for each option list, preferred first.
RESPONSE_KEYS: dict[FilterDimension, tuple[str, ...]] = {
    D.CLASS: ("classes", "class"),
    D.CAR: ("cars", "car"),
    D.TRACK: ("tracks", "track"),
    D.SEASON: ("seasons", "season"),
    D.WEEK: ("weeks", "week"),
    D.VARIATION: ("variations", "track_variations", "track_variation"),
    D.SERIES: ("serieses", "series"),
    D.YEAR: ("years", "year"),
    D.VERSION: ("versions", "version"),
}

NUMERIC_DIMENSIONS: frozenset[FilterDimension] = frozenset({D.WEEK, D.YEAR})

ALLOWED_REQUEST_KEYS: tuple[str, ...] = tuple(REQUEST_KEYS.values())


def is_rich_category(slug: str | None, rich_slugs: Iterable[str] | None = None) -> bool:
    """Return ``True`` when ``slug`` names a category using the rich ordering."""

    candidates = config.RICH_CATEGORY_SLUGS if rich_slugs is None else rich_slugs
    return str(slug or "").strip().lower() in {s.lower() for s in candidates}


def fields_for_category(
    slug: str | None, rich_slugs: Iterable[str] | None = None
) -> tuple[FilterDimension, ...]:
    """Return the fixed cascade order for the category ``slug``."""

    return RICH_ORDER if is_rich_category(slug, rich_slugs) else SIMPLE_ORDER


__all__ = [
    "ALLOWED_REQUEST_KEYS",
    "FilterDimension",
    "NUMERIC_DIMENSIONS",
    "REQUEST_KEYS",
    "RESPONSE_KEYS",
    "RICH_ORDER",
    "SIMPLE_ORDER",
    "fields_for_category",
    "is_rich_category",
]
