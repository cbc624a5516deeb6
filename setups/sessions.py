"""Per-visitor session objects kept in bounded, least-recently-used maps."""

from __future__ import annotations

import logging
from collections import OrderedDict
from threading import Lock
from typing import Callable, Generic, Hashable, TypeVar

from setups.browser import SetupBrowser
from setups.catalog import Category

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SessionRegistry(Generic[T]):
    """Thread-safe LRU map of visitor keys to session objects.

    Every insertion trims the map back to ``max_sessions`` by dropping the
    least recently used entries.
    """

    def __init__(self, *, max_sessions: int = 1000) -> None:
        self._max_sessions = max(1, int(max_sessions))
        self._lock = Lock()
        self._items: OrderedDict[Hashable, T] = OrderedDict()

    def _trim(self) -> None:
        while len(self._items) > self._max_sessions:
            evicted, _ = self._items.popitem(last=False)
            logger.debug("Evicted session %s", evicted)

    def get_or_create(
        self,
        key: Hashable,
        factory: Callable[[], T],
        *,
        replace: bool = False,
        is_current: Callable[[T], bool] | None = None,
    ) -> tuple[T, bool]:
        """Return the object stored under ``key`` and whether it was just created.

        ``replace`` always stores a fresh object; ``is_current`` can reject a
        stored one so it is rebuilt.
        """

        with self._lock:
            item = None if replace else self._items.get(key)
            if item is not None and (is_current is None or is_current(item)):
                self._items.move_to_end(key)
                return item, False
            item = factory()
            self._items[key] = item
            self._items.move_to_end(key)
            self._trim()
            return item, True

    def discard(self, key: Hashable) -> None:
        with self._lock:
            self._items.pop(key, None)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class BrowserRegistry(SessionRegistry[SetupBrowser]):
    """``SetupBrowser`` per ``(session key, category slug)``."""

    def __init__(
        self,
        factory: Callable[[Category], SetupBrowser],
        *,
        max_sessions: int = 1000,
    ) -> None:
        super().__init__(max_sessions=max_sessions)
        self._factory = factory

    @staticmethod
    def _key(session_key: str, category: Category) -> tuple[str, str]:
        return (session_key, category.slug.lower())

    def get(self, session_key: str, category: Category) -> tuple[SetupBrowser, bool]:
        """Return the browser for this visitor and category, and whether it is new."""

        return self.get_or_create(
            self._key(session_key, category),
            lambda: self._factory(category),
            is_current=lambda browser: browser.category.id == category.id,
        )

    def reset(self, session_key: str, category: Category) -> SetupBrowser:
        """Replace the browser with a fresh one, as when the page is reloaded."""

        browser, _ = self.get_or_create(
            self._key(session_key, category),
            lambda: self._factory(category),
            replace=True,
        )
        return browser

    def discard(self, session_key: str, category: Category) -> None:  # type: ignore[override]
        super().discard(self._key(session_key, category))


__all__ = ["BrowserRegistry", "SessionRegistry"]
