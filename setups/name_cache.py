"""Persisted display-name to id resolution per filter dimension."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Iterable, Protocol
from urllib.parse import unquote

from sqlalchemy import select, text
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import column, table

from db import utils as db_utils
from setups.options import FilterOption
from setups.registry import FilterDimension
from setups.url_sync import slugify

NAME_CACHE_TABLE = "filter_name_cache"

_cache_table = table(
    NAME_CACHE_TABLE,
    column("dimension"),
    column("entries"),
    column("updated_at"),
)


def name_keys(name: str) -> list[str]:
    """Return the lookup keys a display name is stored and resolved under."""

    raw = str(name or "").strip()
    keys: list[str] = []
    for candidate in (raw.lower(), unquote(raw).strip().lower(), slugify(raw)):
        if candidate and candidate not in keys:
            keys.append(candidate)
    return keys


def _empty_entry() -> dict[str, dict[str, Any]]:
    return {"names": {}, "labels": {}}


class NameCacheStorage(Protocol):
    def load(self, dimension: FilterDimension) -> dict[str, dict[str, Any]]: ...

    def save(self, dimension: FilterDimension, entry: dict[str, dict[str, Any]]) -> None: ...


class MemoryNameCacheStorage:
    """Process-local storage, used when no database is configured."""

    def __init__(self) -> None:
        self._rows: dict[str, str] = {}

    def load(self, dimension: FilterDimension) -> dict[str, dict[str, Any]]:
        raw = self._rows.get(dimension.value)
        return json.loads(raw) if raw else _empty_entry()

    def save(self, dimension: FilterDimension, entry: dict[str, dict[str, Any]]) -> None:
        self._rows[dimension.value] = json.dumps(entry, sort_keys=True)


class SqlNameCacheStorage:
    """One row per dimension holding the serialized name map."""

    def __init__(self, engine: db_utils.DatabaseEngine) -> None:
        self._engine = engine

    def ensure_table(self) -> None:
        dialect = self._engine.dialect_name
        entries_type = "LONGTEXT" if dialect in {"mysql", "mariadb"} else "TEXT"
        statement = text(
            f"""
            CREATE TABLE IF NOT EXISTS {db_utils.quote_identifier(self._engine, NAME_CACHE_TABLE)} (
                dimension VARCHAR(32) PRIMARY KEY,
                entries {entries_type} NOT NULL,
                updated_at VARCHAR(64)
            )
            """
        )
        with self._engine.sa_connection() as sa_conn:
            with sa_conn.begin():
                sa_conn.execute(statement)

    def load(self, dimension: FilterDimension) -> dict[str, dict[str, Any]]:
        stmt = (
            select(_cache_table.c.entries)
            .where(_cache_table.c.dimension == dimension.value)
            .limit(1)
        )
        with self._engine.sa_connection() as sa_conn:
            row = sa_conn.execute(stmt).mappings().fetchone()
        if row is None or not row["entries"]:
            return _empty_entry()
        try:
            data = json.loads(row["entries"])
        except ValueError:
            return _empty_entry()
        if not isinstance(data, dict):
            return _empty_entry()
        return {
            "names": dict(data.get("names") or {}),
            "labels": dict(data.get("labels") or {}),
        }

    def save(self, dimension: FilterDimension, entry: dict[str, dict[str, Any]]) -> None:
        values = {
            "dimension": dimension.value,
            "entries": json.dumps(entry, sort_keys=True),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        dialect_name = self._engine.dialect_name
        if dialect_name in {"mariadb", "mysql"}:
            stmt = mysql_insert(_cache_table).values(**values)
            stmt = stmt.on_duplicate_key_update(
                entries=stmt.inserted.entries,
                updated_at=stmt.inserted.updated_at,
            )
        elif dialect_name == "sqlite":
            stmt = _cache_table.insert().values(**values).prefix_with("OR REPLACE")
        else:
            stmt = _cache_table.insert().values(**values)
        with self._engine.sa_connection() as sa_conn:
            with sa_conn.begin():
                sa_conn.execute(stmt)


class NameResolutionCache:
    """Map slugs and display names back to numeric option ids.

    Entries are only ever added. Each dimension is loaded from storage on
    first use and written back whenever new names arrive.
    """

    def __init__(
        self,
        storage: NameCacheStorage | None = None,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._storage: NameCacheStorage = storage or MemoryNameCacheStorage()
        self._logger = logger or logging.getLogger(__name__)
        self._lock = Lock()
        self._entries: dict[FilterDimension, dict[str, dict[str, Any]]] = {}

    def _load(self, dimension: FilterDimension) -> dict[str, dict[str, Any]]:
        try:
            return self._storage.load(dimension)
        except (SQLAlchemyError, OSError) as exc:
            self._logger.warning("Failed to load name cache for %s: %s", dimension.value, exc)
            return _empty_entry()

    def _entry(self, dimension: FilterDimension) -> dict[str, dict[str, Any]]:
        entry = self._entries.get(dimension)
        if entry is None:
            entry = self._load(dimension)
            self._entries[dimension] = entry
        return entry

    @staticmethod
    def _apply(entry: dict[str, dict[str, Any]], options: list[FilterOption]) -> int:
        added = 0
        for option in options:
            for key in name_keys(option.name):
                if key not in entry["names"]:
                    added += 1
                entry["names"][key] = option.id
            entry["labels"][str(option.id)] = option.name
        return added

    @staticmethod
    def _is_known(entry: dict[str, dict[str, Any]], options: list[FilterOption]) -> bool:
        for option in options:
            if entry["labels"].get(str(option.id)) != option.name:
                return False
            if any(entry["names"].get(key) != option.id for key in name_keys(option.name)):
                return False
        return True

    def remember(self, dimension: FilterDimension, options: Iterable[FilterOption]) -> int:
        """Upsert ``options`` for ``dimension``; return how many keys were new.

        Storage is only touched when the options add or change something.
        """

        options = list(options)
        if not options:
            return 0
        with self._lock:
            entry = self._entry(dimension)
            if self._is_known(entry, options):
                return 0
            # Re-read before writing so entries saved by other workers are kept.
            stored = self._load(dimension)
            entry["names"] = {**stored["names"], **entry["names"]}
            entry["labels"] = {**stored["labels"], **entry["labels"]}
            added = self._apply(entry, options)
            try:
                self._storage.save(dimension, entry)
            except (SQLAlchemyError, OSError) as exc:
                self._logger.warning(
                    "Failed to persist name cache for %s: %s", dimension.value, exc
                )
        if added:
            self._logger.debug("Name cache learned %s keys for %s", added, dimension.value)
        return added

    def resolve(self, dimension: FilterDimension, display_name: str) -> int | None:
        """Return the id cached for ``display_name`` or ``None``."""

        with self._lock:
            names = self._entry(dimension)["names"]
            for key in name_keys(display_name):
                option_id = names.get(key)
                if option_id is not None:
                    try:
                        return int(option_id)
                    except (TypeError, ValueError):
                        continue
        return None

    def label_for(self, dimension: FilterDimension, option_id: int | None) -> str | None:
        """Return the last known display name for ``option_id``."""

        if option_id is None:
            return None
        with self._lock:
            return self._entry(dimension)["labels"].get(str(option_id))


__all__ = [
    "MemoryNameCacheStorage",
    "NAME_CACHE_TABLE",
    "NameResolutionCache",
    "SqlNameCacheStorage",
    "name_keys",
]
