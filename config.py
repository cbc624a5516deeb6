"""Application-wide configuration helpers and constants."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Final
from urllib.parse import quote_plus, urlparse

from dotenv import load_dotenv

BASE_DIR: Final[Path] = Path(__file__).resolve().parent

load_dotenv(BASE_DIR / ".env")


logger = logging.getLogger(__name__)


def _clean_text(value: str | None) -> str:
    """Return ``value`` stripped of surrounding whitespace."""

    if value is None:
        return ""
    return value.strip()


def _path_from(env_value: str | None, default: str | Path) -> Path:
    """Resolve a filesystem path using an environment override when provided."""

    text = _clean_text(env_value)
    candidate = Path(text) if text else Path(default)
    candidate = candidate.expanduser()
    if candidate.is_absolute():
        try:
            return candidate.resolve()
        except (OSError, RuntimeError):  # pragma: no cover - fallback for exotic paths
            return candidate
    return candidate


def _coerce_positive_float(value: str | None, default: float) -> float:
    """Return ``value`` coerced to a positive float or ``default`` when invalid."""

    text = _clean_text(value)
    if not text:
        return default
    try:
        numeric = float(text)
    except (TypeError, ValueError):
        return default
    return numeric if numeric > 0 else default


def _coerce_positive_int(value: str | None, default: int) -> int:
    """Return ``value`` coerced to a positive integer or ``default`` when invalid."""

    text = _clean_text(value)
    if not text:
        return default
    try:
        numeric = int(float(text))
    except (TypeError, ValueError):
        return default
    return numeric if numeric > 0 else default


def _coerce_truthy_env(value: str | None) -> bool:
    """Return ``True`` when ``value`` represents an affirmative flag."""

    if value is None:
        return False
    text = value.strip().lower()
    return text in {"1", "true", "yes", "on"}


def _coerce_slug_set(value: str | None, default: str) -> frozenset[str]:
    """Return a lowercase set of comma separated slugs."""

    text = _clean_text(value) or default
    return frozenset(
        part.strip().lower() for part in text.split(",") if part.strip()
    )


def _clean_path(value: str | None, default: str) -> str:
    text = _clean_text(value) or default
    return text if text.startswith("/") else f"/{text}"


LOG_DIR_PATH: Final[Path] = _path_from(os.environ.get("LOG_DIR"), BASE_DIR / "logs")
LOG_DIR: Final[str] = os.fspath(LOG_DIR_PATH)
LOG_FILE_PATH: Final[Path] = _path_from(
    os.environ.get("LOG_FILE"), LOG_DIR_PATH / "app.log"
)
LOG_FILE: Final[str] = os.fspath(LOG_FILE_PATH)

API_BASE_URL: Final[str] = (
    _clean_text(os.environ.get("API_BASE_URL")) or "https://www.hymosetups.com"
).rstrip("/")
CATEGORIES_PATH: Final[str] = _clean_path(
    os.environ.get("API_CATEGORIES_PATH"), "/api/v1/products/categories"
)
FILTERS_PATH: Final[str] = _clean_path(
    os.environ.get("API_FILTERS_PATH"), "/api/v1/setups/filters"
)
SEARCH_PATH: Final[str] = _clean_path(
    os.environ.get("API_SEARCH_PATH"), "/api/v1/setups/search"
)
CAR_FILTERS_PATH: Final[str] = _clean_path(
    os.environ.get("API_CAR_FILTERS_PATH"), "/api/v1/products/car-cascading-filters"
)
PLANS_PATH: Final[str] = _clean_path(os.environ.get("API_PLANS_PATH"), "/api/v1/plans")
CHECKOUT_PATH: Final[str] = _clean_path(
    os.environ.get("API_CHECKOUT_PATH"), "/api/v1/checkout/create-session"
)
REFRESH_PATH: Final[str] = _clean_path(
    os.environ.get("API_REFRESH_PATH"), "/api/v1/refresh"
)
LOGOUT_PATH: Final[str] = _clean_path(os.environ.get("API_LOGOUT_PATH"), "/api/v1/logout")
SUBSCRIPTIONS_PATH: Final[str] = _clean_path(
    os.environ.get("API_SUBSCRIPTIONS_PATH"), "/api/v1/subscriptions"
)
SUBSCRIPTION_CHANGE_PATH: Final[str] = _clean_path(
    os.environ.get("API_SUBSCRIPTION_CHANGE_PATH"), "/api/v1/subscription/change"
)
TRIAL_START_PATH: Final[str] = _clean_path(
    os.environ.get("API_TRIAL_START_PATH"), "/api/v1/trial/start"
)
BILLING_PORTAL_PATH: Final[str] = _clean_path(
    os.environ.get("API_BILLING_PORTAL_PATH"), "/api/v1/billing-portal/session"
)

DEFAULT_API_USER_AGENT: Final[str] = "Setup-Storefront/1.0 (support@example.com)"
API_USER_AGENT: Final[str] = (
    _clean_text(os.environ.get("API_USER_AGENT")) or DEFAULT_API_USER_AGENT
)
API_TIMEOUT_SECONDS: Final[float] = _coerce_positive_float(
    os.environ.get("API_TIMEOUT"), 15.0
)
API_MAX_RETRIES: Final[int] = _coerce_positive_int(os.environ.get("API_MAX_RETRIES"), 3)

SETUPS_PAGE_SIZE: Final[int] = _coerce_positive_int(
    os.environ.get("SETUPS_PAGE_SIZE"), 10
)
RICH_CATEGORY_SLUGS: Final[frozenset[str]] = _coerce_slug_set(
    os.environ.get("RICH_CATEGORY_SLUGS"), "iracing"
)
MAX_VISITOR_SESSIONS: Final[int] = _coerce_positive_int(
    os.environ.get("MAX_VISITOR_SESSIONS"), 1000
)
# Permanent single-car plan; owning it does not count as an active subscription.
CAR_ACCESS_PLAN_ID: Final[int] = _coerce_positive_int(
    os.environ.get("CAR_ACCESS_PLAN_ID"), 5
)

DB_HOST: Final[str] = _clean_text(os.environ.get("DB_HOST")) or "localhost"
DB_PORT: Final[int] = _coerce_positive_int(os.environ.get("DB_PORT"), 3306)
DB_NAME: Final[str] = _clean_text(os.environ.get("DB_NAME")) or "setup_storefront"
DB_USER: Final[str] = _clean_text(os.environ.get("DB_USER"))
DB_PASSWORD: Final[str] = _clean_text(os.environ.get("DB_PASSWORD"))
DB_CONNECT_TIMEOUT_SECONDS: Final[float] = _coerce_positive_float(
    os.environ.get("DB_CONNECT_TIMEOUT"), 10.0
)
NAME_CACHE_ENABLED: Final[bool] = not _coerce_truthy_env(
    os.environ.get("DISABLE_NAME_CACHE")
)


def _build_db_dsn() -> str:
    """Return a database DSN constructed from environment configuration."""

    explicit = _clean_text(os.environ.get("DB_DSN"))
    if explicit:
        return explicit

    maria_overrides = {
        key: _clean_text(os.environ.get(key))
        for key in ("DB_HOST", "DB_PORT", "DB_NAME", "DB_USER", "DB_PASSWORD")
    }
    if any(value for value in maria_overrides.values()):
        auth = ""
        if DB_USER:
            password = quote_plus(DB_PASSWORD) if DB_PASSWORD else ""
            auth = DB_USER
            if password:
                auth = f"{auth}:{password}"
            auth = f"{auth}@"
        return f"mariadb://{auth}{DB_HOST}:{DB_PORT}/{DB_NAME}"

    sqlite_path = _path_from(None, BASE_DIR / "name_cache.db").resolve()
    return f"sqlite:///{sqlite_path.as_posix()}"


DB_DSN: Final[str] = _build_db_dsn()

APP_SECRET_KEY: Final[str] = _clean_text(os.environ.get("APP_SECRET_KEY")) or "dev-secret"


def _validate_settings() -> None:
    """Sanity-check critical configuration values."""

    if not APP_SECRET_KEY:
        raise RuntimeError("APP_SECRET_KEY must not be empty")
    parsed = urlparse(API_BASE_URL)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise RuntimeError(f"API_BASE_URL is not a valid http(s) URL: {API_BASE_URL!r}")


_validate_settings()


__all__ = [
    "API_BASE_URL",
    "API_MAX_RETRIES",
    "API_TIMEOUT_SECONDS",
    "API_USER_AGENT",
    "APP_SECRET_KEY",
    "BASE_DIR",
    "BILLING_PORTAL_PATH",
    "CAR_ACCESS_PLAN_ID",
    "CAR_FILTERS_PATH",
    "CATEGORIES_PATH",
    "CHECKOUT_PATH",
    "DB_CONNECT_TIMEOUT_SECONDS",
    "DB_DSN",
    "DEFAULT_API_USER_AGENT",
    "FILTERS_PATH",
    "LOG_DIR",
    "LOG_DIR_PATH",
    "LOG_FILE",
    "LOG_FILE_PATH",
    "LOGOUT_PATH",
    "MAX_VISITOR_SESSIONS",
    "NAME_CACHE_ENABLED",
    "PLANS_PATH",
    "REFRESH_PATH",
    "RICH_CATEGORY_SLUGS",
    "SEARCH_PATH",
    "SETUPS_PAGE_SIZE",
    "SUBSCRIPTION_CHANGE_PATH",
    "SUBSCRIPTIONS_PATH",
    "TRIAL_START_PATH",
]
