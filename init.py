"""Application startup orchestration helpers."""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from config import DB_DSN, DB_CONNECT_TIMEOUT_SECONDS, NAME_CACHE_ENABLED
from db import utils as db_utils
from setups.name_cache import (
    MemoryNameCacheStorage,
    NameResolutionCache,
    SqlNameCacheStorage,
)

logger = logging.getLogger(__name__)


def build_default_engine() -> db_utils.DatabaseEngine:
    return db_utils.build_engine_from_dsn(DB_DSN, timeout=DB_CONNECT_TIMEOUT_SECONDS)


def initialize_storage(
    *,
    engine: db_utils.DatabaseEngine | None,
    enabled: bool = NAME_CACHE_ENABLED,
) -> NameResolutionCache:
    """Prepare the name resolution cache and its backing table.

    When the cache is disabled, no engine is available, or the table cannot be
    created, the cache falls back to process-local storage so browsing keeps
    working; deep links then only resolve names seen by this process.
    """

    if not enabled or engine is None:
        logger.info("Name cache persistence disabled; using in-memory storage")
        return NameResolutionCache(MemoryNameCacheStorage())

    storage = SqlNameCacheStorage(engine)
    try:
        storage.ensure_table()
    except SQLAlchemyError:
        logger.exception("Failed to prepare name cache table; using in-memory storage")
        return NameResolutionCache(MemoryNameCacheStorage())
    logger.debug("Name cache table ready on %s", engine.dialect_name)
    return NameResolutionCache(storage)


__all__ = ["build_default_engine", "initialize_storage"]
