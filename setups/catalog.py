"""Catalog categories (games) the setups pages are grouped by."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from threading import Lock
from typing import Any, Callable, Mapping, Protocol

from catalog_api.client import ApiError
from helpers import coerce_option_id, has_text_value

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Category:
    id: int
    name: str
    slug: str
    image_url: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Category | None":
        category_id = coerce_option_id(data.get("id"))
        slug = data.get("slug")
        if category_id is None or not has_text_value(slug):
            return None
        name = data.get("name")
        image_url = data.get("image_url")
        return cls(
            id=category_id,
            name=str(name).strip() if has_text_value(name) else str(slug).strip(),
            slug=str(slug).strip(),
            image_url=str(image_url).strip() if has_text_value(image_url) else "",
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


FALLBACK_CATEGORIES: tuple[Category, ...] = (
    Category(1, "iRacing", "iRacing", "https://www.hymosetups.com/uploads/categories/1751544028.jpg"),
    Category(
        2,
        "Assetto Corsa Competizione",
        "assetto-corsa-competizione",
        "https://www.hymosetups.com/uploads/categories/1751544101.jpg",
    ),
    Category(
        3,
        "Le Mans Ultimate",
        "le-mans-ultimate",
        "https://www.hymosetups.com/uploads/categories/1751544176.jpg",
    ),
)


class CategoriesApi(Protocol):
    def fetch_categories(self) -> list[dict[str, Any]]: ...


class CategoryCatalog:
    """Remote category list with a built-in fallback and a short-lived cache."""

    def __init__(
        self,
        client: CategoriesApi,
        *,
        ttl: float = 300.0,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._client = client
        self._ttl = ttl
        self._clock = clock or time.monotonic
        self._lock = Lock()
        self._categories: list[Category] | None = None
        self._loaded_at = 0.0

    def categories(self) -> list[Category]:
        with self._lock:
            now = self._clock()
            if self._categories is None or now - self._loaded_at >= self._ttl:
                self._categories = self._load()
                self._loaded_at = now
            return list(self._categories)

    def _load(self) -> list[Category]:
        try:
            raw = self._client.fetch_categories()
        except ApiError as exc:
            logger.warning("Falling back to built-in categories: %s", exc)
            return list(FALLBACK_CATEGORIES)
        parsed = [category for category in map(Category.from_mapping, raw) if category]
        if not parsed:
            logger.info("Categories endpoint returned nothing; using built-in categories")
            return list(FALLBACK_CATEGORIES)
        return parsed

    def find(self, slug: str | None) -> Category | None:
        wanted = (slug or "").strip().lower()
        if not wanted:
            return None
        for category in self.categories():
            if category.slug.lower() == wanted:
                return category
        return None

    def default(self) -> Category | None:
        categories = self.categories()
        if not categories:
            return None
        return min(categories, key=lambda category: category.id)

    def invalidate(self) -> None:
        with self._lock:
            self._categories = None


__all__ = ["Category", "CategoryCatalog", "FALLBACK_CATEGORIES"]
