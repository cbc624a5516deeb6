"""Translation between browsing selections and ``/setups/...`` URLs."""

from __future__ import annotations

import re
from typing import Iterable, Mapping, Sequence
from urllib.parse import quote, unquote, urlencode

from setups.registry import FilterDimension

_NON_ALNUM = re.compile(r"[^a-z0-9]+")

SETUPS_BASE_PATH = "/setups"

PATH_DIMENSIONS: tuple[FilterDimension, ...] = (FilterDimension.CAR, FilterDimension.TRACK)


def slugify(text: object) -> str:
    """Lowercase, trim, collapse non-alphanumeric runs to ``-`` and strip ``-``."""

    value = str(text or "").strip().lower()
    return _NON_ALNUM.sub("-", value).strip("-")


def parse_setup_location(
    path_segments: Sequence[str],
    query: Mapping[str, str] | Iterable[tuple[str, str]],
) -> dict[FilterDimension, str]:
    """Return the ``dimension -> display name`` pairs requested by a URL.

    ``path_segments`` are the segments after the category segment: car, then
    track. Query keys are matched case-insensitively against dimension names;
    car and track given in the path win over the query string.
    """

    desired: dict[FilterDimension, str] = {}
    segments = [unquote(segment).strip() for segment in path_segments if segment.strip()]
    for dimension, segment in zip(PATH_DIMENSIONS, segments):
        if segment:
            desired[dimension] = segment

    pairs = query.items() if isinstance(query, Mapping) else query
    for key, raw_value in pairs:
        dimension = FilterDimension.parse(key)
        value = str(raw_value or "").strip()
        if dimension is None or not value or dimension in desired:
            continue
        desired[dimension] = value
    return desired


def build_setup_url(
    category_slug: str,
    labels: Mapping[FilterDimension, str],
    fields: Sequence[FilterDimension],
) -> str:
    """Return the canonical URL for the selected display ``labels``.

    The path carries ``car`` and, nested under it, ``track``; every other
    selected dimension goes to the query string in field order. Without a car,
    ``track`` stays in the query string.
    """

    path = f"{SETUPS_BASE_PATH}/{quote(str(category_slug).strip().lower(), safe='')}"
    in_path: set[FilterDimension] = set()
    car_label = labels.get(FilterDimension.CAR)
    if car_label:
        path = f"{path}/{slugify(car_label)}"
        in_path.add(FilterDimension.CAR)
        track_label = labels.get(FilterDimension.TRACK)
        if track_label:
            path = f"{path}/{slugify(track_label)}"
            in_path.add(FilterDimension.TRACK)

    query = [
        (dimension.value, labels[dimension])
        for dimension in fields
        if dimension not in in_path and labels.get(dimension)
    ]
    if not query:
        return path
    return f"{path}?{urlencode(query)}"


__all__ = [
    "PATH_DIMENSIONS",
    "SETUPS_BASE_PATH",
    "build_setup_url",
    "parse_setup_location",
    "slugify",
]
