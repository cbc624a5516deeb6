"""Selection state and cascade-order bookkeeping for one browsing session."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Sequence

from helpers import coerce_option_id
from setups.registry import REQUEST_KEYS, FilterDimension

logger = logging.getLogger(__name__)


class SelectionStore:
    """Track selected ids per dimension and the order in which they were populated.

    ``order`` holds exactly the dimensions with a selection, in population
    order. A change to one dimension invalidates everything populated after
    it. When the session was bootstrapped from a URL ("fixed ranking" mode),
    the order is kept sorted by the category's fixed field order instead.
    """

    def __init__(self, fields: Sequence[FilterDimension]) -> None:
        self.fields: tuple[FilterDimension, ...] = tuple(fields)
        self.selections: dict[FilterDimension, int | None] = {}
        self.order: list[FilterDimension] = []
        self.locked: set[FilterDimension] = set()
        self.fixed_mode: bool = False
        self.fixed_ranking: list[FilterDimension] = []
        self.anchor_index: int | None = None
        self.page: int = 1
        self.reset()

    def reset(self) -> None:
        self.selections = {dimension: None for dimension in self.fields}
        self.order = []
        self.locked = set()
        self.fixed_mode = False
        self.fixed_ranking = []
        self.anchor_index = None
        self.page = 1

    def value(self, dimension: FilterDimension) -> int | None:
        return self.selections.get(dimension)

    def user_change(self, dimension: FilterDimension, value: Any) -> list[FilterDimension]:
        """Apply a direct user edit and return the dimensions it cleared."""

        new_value = coerce_option_id(value)
        self.locked.discard(dimension)
        self.page = 1

        if dimension is FilterDimension.CLASS and new_value is None and self.fixed_mode:
            cleared = [d for d in self.order if d is not dimension]
            self.reset()
            logger.debug("Class cleared in fixed ranking mode; cleared %s", cleared)
            return cleared

        if dimension in self.order:
            anchor = self.order.index(dimension)
        else:
            anchor = len(self.order)

        if new_value is not None:
            if dimension not in self.order:
                self.order.append(dimension)
            dropped = self.order[anchor + 1:]
            self.order = self.order[: anchor + 1]
            self.selections[dimension] = new_value
            self.anchor_index = anchor
        else:
            dropped = [d for d in self.order[anchor:] if d is not dimension]
            self.order = self.order[:anchor]
            self.selections[dimension] = None
            self.anchor_index = anchor - 1

        for other in dropped:
            self.selections[other] = None
            self.locked.discard(other)

        self._recompute_fixed_ranking()
        return dropped

    def auto_resolve(self, dimension: FilterDimension, value: Any) -> bool:
        """Apply a system-driven change without truncating later selections.

        The anchor is moved so it still ends on the last dimension it covered,
        so a removal never pulls a later dimension into the request prefix.
        Returns ``True`` when the stored value actually changed.
        """

        new_value = coerce_option_id(value)
        if self.selections.get(dimension) == new_value:
            return False
        prefix = self._anchor_prefix()
        self.selections[dimension] = new_value
        if new_value is None:
            if dimension in self.order:
                self.order.remove(dimension)
            self.locked.discard(dimension)
        elif dimension not in self.order:
            self.order.append(dimension)
        self._recompute_fixed_ranking()
        if prefix is not None:
            self.anchor_index = max(
                (index for index, d in enumerate(self.order) if d in prefix),
                default=-1,
            )
        return True

    def _anchor_prefix(self) -> set[FilterDimension] | None:
        if self.anchor_index is None:
            return None
        return set(self.order[: self.anchor_index + 1])

    def bootstrap(self, resolved: Iterable[tuple[FilterDimension, int]]) -> None:
        """Seed selections reconstructed from a URL and enter fixed ranking mode."""

        self.reset()
        seeded = dict(resolved)
        for dimension in self.fields:
            option_id = seeded.get(dimension)
            if option_id is None:
                continue
            self.selections[dimension] = option_id
            self.order.append(dimension)
            self.locked.add(dimension)
        if self.order:
            self.fixed_mode = True
            self.anchor_index = len(self.order) - 1
        self._recompute_fixed_ranking()

    def request_fields(self, *, full: bool = False) -> dict[str, int]:
        """Return the body fields for the populated prefix ending at the anchor."""

        if full or self.anchor_index is None:
            dimensions = list(self.order)
        else:
            dimensions = self.order[: self.anchor_index + 1]
        fields: dict[str, int] = {}
        for dimension in dimensions:
            option_id = self.selections.get(dimension)
            if option_id is not None:
                fields[REQUEST_KEYS[dimension]] = option_id
        return fields

    def is_consistent(self) -> bool:
        populated = {d for d, v in self.selections.items() if v is not None}
        return len(self.order) == len(set(self.order)) and set(self.order) == populated

    def _recompute_fixed_ranking(self) -> None:
        if not self.fixed_mode:
            self.fixed_ranking = []
            return
        touched = set(self.order)
        ranked = [d for d in self.fields if d in touched]
        extras = [d for d in self.order if d not in self.fields]
        self.fixed_ranking = ranked + extras
        self.order = list(self.fixed_ranking)


__all__ = ["SelectionStore"]
