"""Cascading filter browsing session for one catalog category."""

from __future__ import annotations

import logging
from threading import RLock
from typing import Any, Iterable, Mapping, Protocol, Sequence

import config
from catalog_api.client import ApiError
from setups.catalog import Category
from setups.name_cache import NameResolutionCache
from setups.options import FilterOption, extract_dimension_options, find_option
from setups.registry import FilterDimension, fields_for_category
from setups.results import ResultsPage, paginate, result_id, sort_results
from setups.state import SelectionStore
from setups.url_sync import build_setup_url, parse_setup_location


class SetupsApi(Protocol):
    def fetch_cascading_filters(self, body: Mapping[str, Any]) -> dict[str, Any]: ...

    def search_setups(self, body: Mapping[str, Any]) -> list[dict[str, Any]]: ...


class SetupBrowser:
    """Selection state, option lists and search results for one visitor and category.

    Every mutation runs its follow-up work (cascading fetch, auto-search)
    before returning. Callers sharing a browser across threads hold ``lock``.
    """

    def __init__(
        self,
        category: Category,
        client: SetupsApi,
        name_cache: NameResolutionCache,
        *,
        fields: Sequence[FilterDimension] | None = None,
        page_size: int | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.category = category
        self.fields: tuple[FilterDimension, ...] = tuple(
            fields or fields_for_category(category.slug)
        )
        self.page_size = page_size or config.SETUPS_PAGE_SIZE
        self.lock = RLock()
        self._client = client
        self._name_cache = name_cache
        self._logger = logger or logging.getLogger(__name__)

        self.store = SelectionStore(self.fields)
        self.options: dict[FilterDimension, list[FilterOption]] = {}
        self.results: list[dict[str, Any]] = []
        self.selected_setup: dict[str, Any] | None = None
        self.has_searched = False
        self.loading = False
        self.fetch_count = 0
        self.search_count = 0
        self._skip_next_fetch = False
        self._auto_search_done = False
        self._clear_options()

    def _clear_options(self) -> None:
        self.options = {dimension: [] for dimension in self.fields}

    def reset(self) -> None:
        """Drop all session state, as when navigating away from the page."""

        self.store.reset()
        self._clear_options()
        self.results = []
        self.selected_setup = None
        self.has_searched = False
        self._skip_next_fetch = False
        self._auto_search_done = False

    def load(self) -> None:
        """Fetch the initial option lists for an unfiltered page."""

        self.refresh_options()

    def parse_dimension(self, value: Any) -> FilterDimension:
        dimension = FilterDimension.parse(value)
        if dimension is None or dimension not in self.fields:
            raise ValueError(f"unknown filter dimension for {self.category.slug}: {value!r}")
        return dimension

    def user_change(self, dimension: Any, value: Any) -> list[FilterDimension]:
        """Apply a dropdown change and re-query the cascade."""

        resolved = self.parse_dimension(dimension)
        cleared = self.store.user_change(resolved, value)
        self._logger.debug(
            "User set %s=%r; cleared %s; order=%s",
            resolved.value,
            value,
            [d.value for d in cleared],
            [d.value for d in self.store.order],
        )
        self._state_changed()
        return cleared

    def _state_changed(self) -> None:
        if self._skip_next_fetch:
            self._skip_next_fetch = False
            self._logger.debug("Skipping cascading fetch after auto-resolution")
            return
        self.refresh_options()

    def refresh_options(self) -> None:
        """Re-fetch option lists for the populated prefix and reconcile selections."""

        body: dict[str, Any] = {"category_id": self.category.id}
        body.update(self.store.request_fields())
        self.fetch_count += 1
        self.loading = True
        try:
            data = self._client.fetch_cascading_filters(body)
        except ApiError as exc:
            self._logger.warning(
                "Cascading filters failed for %s (%s); clearing options", self.category.slug, exc
            )
            self._clear_options()
            return
        finally:
            self.loading = False

        auto_selected = False
        auto_cleared = False
        for dimension in self.fields:
            fresh = extract_dimension_options(data, dimension)
            if fresh is None:
                continue
            self._name_cache.remember(dimension, fresh)
            current = self.store.value(dimension)

            if dimension in self.store.locked and current is not None:
                self.options[dimension] = self._locked_options(dimension, current, fresh)
            elif len(fresh) == 1:
                self.options[dimension] = fresh
                if self.store.auto_resolve(dimension, fresh[0].id):
                    self._logger.debug(
                        "Auto-selected only %s option %s", dimension.value, fresh[0].name
                    )
                    auto_selected = True
            elif current is not None and find_option(fresh, current) is None:
                self.options[dimension] = fresh
                self.store.auto_resolve(dimension, None)
                self._logger.debug("Cleared %s=%s; no longer offered", dimension.value, current)
                auto_cleared = True
            else:
                self.options[dimension] = fresh

        if auto_selected:
            self._skip_next_fetch = True
            self._state_changed()
        elif auto_cleared:
            self._state_changed()

    def _locked_options(
        self, dimension: FilterDimension, current: int, fresh: list[FilterOption]
    ) -> list[FilterOption]:
        match = find_option(fresh, current)
        if match is not None:
            return [match]
        label = self._name_cache.label_for(dimension, current)
        if not label:
            existing = find_option(self.options.get(dimension, []), current)
            label = existing.name if existing is not None else None
        self._logger.debug(
            "Locked %s=%s missing from fresh options; keeping placeholder", dimension.value, current
        )
        return [FilterOption(current, label)] if label else []

    def bootstrap_from_location(
        self,
        path_segments: Sequence[str],
        query: Mapping[str, str] | Iterable[tuple[str, str]],
    ) -> None:
        """Rebuild selections from a deep link, confirm them, then search once."""

        desired = parse_setup_location(path_segments, query)
        resolved: list[tuple[FilterDimension, int]] = []
        placeholders: dict[FilterDimension, FilterOption] = {}
        for dimension in self.fields:
            display_name = desired.get(dimension)
            if not display_name:
                continue
            option_id = self._name_cache.resolve(dimension, display_name)
            if option_id is None:
                self._logger.debug(
                    "Dropping %s=%r from deep link; name not cached", dimension.value, display_name
                )
                continue
            label = self._name_cache.label_for(dimension, option_id) or display_name
            resolved.append((dimension, option_id))
            placeholders[dimension] = FilterOption(option_id, label)

        self.reset()
        self.store.bootstrap(resolved)
        for dimension, option in placeholders.items():
            self.options[dimension] = [option]

        self.refresh_options()
        if resolved:
            self._maybe_auto_search()

    def _maybe_auto_search(self) -> None:
        if self._auto_search_done or not self.store.order:
            return
        self._auto_search_done = True
        self.search(update_url=False)

    def search(self, *, update_url: bool = True) -> str | None:
        """Run the setup search for the current selections.

        Returns the canonical URL to replace the current one with when
        ``update_url`` is set.
        """

        self.has_searched = True
        self.store.page = 1
        body: dict[str, Any] = {"category_id": self.category.id}
        body.update(self.store.request_fields(full=True))
        url = self.current_url() if update_url else None
        self.search_count += 1
        self.loading = True
        try:
            items = self._client.search_setups(body)
        except ApiError as exc:
            self._logger.warning("Setup search failed for %s: %s", self.category.slug, exc)
            items = []
        finally:
            self.loading = False
        self.results = sort_results(items)
        self.selected_setup = self.results[0] if self.results else None
        return url

    def selected_labels(self) -> dict[FilterDimension, str]:
        labels: dict[FilterDimension, str] = {}
        for dimension in self.store.order:
            option = find_option(self.options.get(dimension, []), self.store.value(dimension))
            if option is not None:
                labels[dimension] = option.name
        return labels

    def current_url(self) -> str:
        return build_setup_url(self.category.slug, self.selected_labels(), self.fields)

    def go_to_page(self, page: Any) -> ResultsPage:
        view = paginate(self.results, page, self.page_size)
        self.store.page = view.page
        return view

    def page_view(self) -> ResultsPage:
        return paginate(self.results, self.store.page, self.page_size)

    def select_setup(self, setup_id: Any) -> dict[str, Any] | None:
        """Show ``setup_id`` in the detail view; ordering is unaffected."""

        wanted = str(setup_id)
        for item in self.results:
            if str(result_id(item)) == wanted:
                self.selected_setup = item
                return item
        return None

    def snapshot(self) -> dict[str, Any]:
        """Return a JSON-serialisable view of the session."""

        return {
            "category": self.category.to_dict(),
            "fields": [dimension.value for dimension in self.fields],
            "selections": {
                dimension.value: self.store.value(dimension) for dimension in self.fields
            },
            "order": [dimension.value for dimension in self.store.order],
            "locked": sorted(dimension.value for dimension in self.store.locked),
            "fixed_ranking": [dimension.value for dimension in self.store.fixed_ranking],
            "options": {
                dimension.value: [option.to_dict() for option in self.options[dimension]]
                for dimension in self.fields
            },
            "has_searched": self.has_searched,
            "results": self.page_view().to_dict(),
            "selected_setup": self.selected_setup,
            "url": self.current_url(),
        }


__all__ = ["SetupBrowser"]
