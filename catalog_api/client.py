"""Setups storefront REST API client."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Mapping

from urllib.error import HTTPError
from urllib.request import Request, urlopen

import config

logger = logging.getLogger(__name__)


__all__ = [
    "ApiError",
    "SetupsApiClient",
    "is_success",
]


class ApiError(RuntimeError):
    """Raised for any failed call against the remote setups API."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def is_success(payload: Any) -> bool:
    """Return ``True`` when ``payload`` carries ``success`` or ``status`` set to true."""

    if not isinstance(payload, Mapping):
        return False
    return payload.get("success") is True or payload.get("status") is True


def _payload_message(payload: Any, default: str) -> str:
    if isinstance(payload, Mapping):
        message = payload.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
    return default


class SetupsApiClient:
    """Thin JSON client over the catalog, filter, search and checkout endpoints."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        user_agent: str | None = None,
        rate_limit_wait: float = 1.0,
        request_factory: Callable[..., Any] | None = None,
        opener: Callable[..., Any] | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._base_url = (base_url or config.API_BASE_URL).rstrip("/")
        self._timeout = timeout if timeout and timeout > 0 else config.API_TIMEOUT_SECONDS
        self._max_retries = max(1, int(max_retries or config.API_MAX_RETRIES))
        self._user_agent = (user_agent or config.API_USER_AGENT).strip()
        self._rate_limit_wait = rate_limit_wait if rate_limit_wait > 0 else 1.0
        self._request_factory = request_factory or Request
        self._opener = opener or urlopen
        self._sleep = sleep or time.sleep

    @property
    def base_url(self) -> str:
        return self._base_url

    def url_for(self, route: str) -> str:
        path = route if route.startswith("/") else f"/{route}"
        return f"{self._base_url}{path}"

    def fetch_categories(self) -> list[dict[str, Any]]:
        """Return the catalog categories (games)."""

        payload = self._get(config.CATEGORIES_PATH, context="categories request")
        data = self._unwrap(payload, context="categories request")
        if not isinstance(data, list):
            raise ApiError("categories response is missing a data list")
        return [dict(item) for item in data if isinstance(item, Mapping)]

    def fetch_plans(self) -> dict[str, Any]:
        """Return the raw plans payload."""

        payload = self._get(config.PLANS_PATH, context="plans request")
        if not isinstance(payload, Mapping):
            raise ApiError("invalid plans payload")
        return dict(payload)

    def fetch_cascading_filters(self, body: Mapping[str, Any]) -> dict[str, Any]:
        """Return the option lists valid for the filter prefix in ``body``."""

        payload = self.filters_payload(body)
        return self._unwrap_mapping(payload, context="cascading filters request")

    def filters_payload(self, body: Mapping[str, Any]) -> Any:
        """Return the cascading-filter response as sent, without unwrapping it."""

        return self._post(config.FILTERS_PATH, body, context="cascading filters request")

    def fetch_car_filters(self, body: Mapping[str, Any]) -> dict[str, Any]:
        """Return class and car options for the car-access purchase flow."""

        payload = self._post(config.CAR_FILTERS_PATH, body, context="car filters request")
        return self._unwrap_mapping(payload, context="car filters request")

    def search_setups(self, body: Mapping[str, Any]) -> list[dict[str, Any]]:
        """Return the setups matching the filter ``body``."""

        payload = self._post(config.SEARCH_PATH, body, context="setup search request")
        data = self._unwrap(payload, context="setup search request")
        if not isinstance(data, list):
            raise ApiError("setup search response is missing a data list")
        return [dict(item) for item in data if isinstance(item, Mapping)]

    def create_checkout_session(
        self, payload: Mapping[str, Any], *, access_token: str | None
    ) -> str:
        """Create a checkout session and return the hosted checkout URL."""

        response = self._post(
            config.CHECKOUT_PATH,
            payload,
            context="checkout request",
            access_token=access_token,
        )
        if not is_success(response):
            raise ApiError(_payload_message(response, "Checkout failed"))
        data = response.get("data") if isinstance(response.get("data"), Mapping) else {}
        url = data.get("url") or response.get("url")
        if not isinstance(url, str) or not url:
            raise ApiError("Checkout failed")
        return url

    def fetch_subscriptions(self, *, access_token: str | None) -> dict[str, Any]:
        """Return the raw subscriptions payload of the signed-in user."""

        payload = self._get(
            config.SUBSCRIPTIONS_PATH,
            context="subscriptions request",
            access_token=access_token,
        )
        if not isinstance(payload, Mapping):
            raise ApiError("invalid subscriptions payload")
        return dict(payload)

    def change_subscription(
        self, payload: Mapping[str, Any], *, access_token: str | None
    ) -> dict[str, Any]:
        """Switch the active subscription; returns the response ``data``."""

        return self._post_action(
            config.SUBSCRIPTION_CHANGE_PATH,
            payload,
            context="subscription change",
            access_token=access_token,
        )

    def start_trial(
        self, payload: Mapping[str, Any], *, access_token: str | None
    ) -> dict[str, Any]:
        return self._post_action(
            config.TRIAL_START_PATH,
            payload,
            context="trial start",
            access_token=access_token,
        )

    def create_billing_portal_session(self, *, access_token: str | None) -> str | None:
        """Return the billing portal URL, or ``None`` when none was issued."""

        response = self._post(
            config.BILLING_PORTAL_PATH,
            {},
            context="billing portal request",
            access_token=access_token,
        )
        if not isinstance(response, Mapping):
            return None
        data = response.get("data") if isinstance(response.get("data"), Mapping) else {}
        url = data.get("url") or response.get("url")
        return url if isinstance(url, str) and url else None

    def refresh_tokens(self, refresh_token: str) -> dict[str, Any]:
        """Exchange ``refresh_token`` for a new token pair."""

        payload = self._post(
            config.REFRESH_PATH,
            {"refresh_token": refresh_token},
            context="token refresh",
            retry_rate_limit=False,
        )
        if not isinstance(payload, Mapping) or not all(
            key in payload for key in ("access_token", "refresh_token", "expires_in")
        ):
            raise ApiError("Invalid refresh response")
        return dict(payload)

    def logout(self, email: str, refresh_token: str) -> None:
        self._post(
            config.LOGOUT_PATH,
            {"email": email},
            context="logout request",
            access_token=refresh_token,
            retry_rate_limit=False,
        )

    def _get(self, route: str, *, context: str, access_token: str | None = None) -> Any:
        request = self._request_factory(self.url_for(route), method="GET")
        self._apply_headers(request, access_token=access_token)
        return self._request_json(request, context=context)

    def _post(
        self,
        route: str,
        body: Mapping[str, Any],
        *,
        context: str,
        access_token: str | None = None,
        retry_rate_limit: bool = True,
    ) -> Any:
        request = self._request_factory(
            self.url_for(route),
            data=json.dumps(dict(body)).encode("utf-8"),
            method="POST",
        )
        self._apply_headers(request, access_token=access_token, has_body=True)
        return self._request_json(
            request, context=context, allow_rate_limit=retry_rate_limit
        )

    def _post_action(
        self,
        route: str,
        body: Mapping[str, Any],
        *,
        context: str,
        access_token: str | None,
    ) -> dict[str, Any]:
        response = self._post(route, body, context=context, access_token=access_token)
        if not is_success(response):
            raise ApiError(_payload_message(response, f"{context} failed"))
        data = response.get("data")
        result = dict(data) if isinstance(data, Mapping) else {}
        for key, value in response.items():
            if key not in {"status", "success", "message", "data"}:
                result.setdefault(key, value)
        return result

    def _apply_headers(
        self,
        request: Any,
        *,
        access_token: str | None = None,
        has_body: bool = False,
    ) -> None:
        request.add_header("Accept", "application/json")
        request.add_header("User-Agent", self._user_agent)
        if has_body:
            request.add_header("Content-Type", "application/json")
        if access_token:
            request.add_header("Authorization", f"Bearer {access_token}")

    def _unwrap(self, payload: Any, *, context: str) -> Any:
        if not is_success(payload):
            raise ApiError(_payload_message(payload, f"{context} was not successful"))
        return payload.get("data")

    def _unwrap_mapping(self, payload: Any, *, context: str) -> dict[str, Any]:
        if not is_success(payload):
            raise ApiError(_payload_message(payload, f"{context} was not successful"))
        data = payload.get("data", payload)
        if not isinstance(data, Mapping):
            raise ApiError(f"{context} returned no filter data")
        return dict(data)

    def _request_json(
        self,
        request: Any,
        *,
        context: str,
        allow_rate_limit: bool = True,
    ) -> Any:
        attempts = self._max_retries if allow_rate_limit else 1
        for attempt in range(attempts):
            try:
                with self._opener(request, timeout=self._timeout) as response:
                    body = response.read()
            except HTTPError as exc:
                if allow_rate_limit and exc.code == 429 and attempt + 1 < attempts:
                    delay = self._retry_delay(exc)
                    logger.debug("%s rate limited; retrying in %.2fs", context, delay)
                    if delay > 0:
                        self._sleep(delay)
                    continue
                raise ApiError(
                    _format_http_error(f"{context} failed", exc), status_code=exc.code
                ) from exc
            except Exception as exc:
                raise ApiError(f"{context} failed: {exc}") from exc
            try:
                text = body.decode("utf-8") if body else ""
            except UnicodeDecodeError as exc:
                raise ApiError(f"{context} returned undecodable body") from exc
            try:
                return json.loads(text) if text else {}
            except ValueError as exc:
                raise ApiError(f"invalid JSON response from {context}") from exc
        raise ApiError(f"{context} failed: rate limited", status_code=429)

    def _retry_delay(self, error: HTTPError) -> float:
        headers = getattr(error, "headers", None)
        if headers is not None:
            for key in ("Retry-After", "retry-after"):
                value = headers.get(key)
                if value:
                    try:
                        delay = float(value)
                    except (TypeError, ValueError):
                        continue
                    if delay > 0:
                        return delay
        return self._rate_limit_wait


def _format_http_error(prefix: str, error: HTTPError) -> str:
    message = f"{prefix}: {error.code}"
    error_message = ""
    try:
        error_body = error.read()
    except Exception:  # pragma: no cover - best effort to capture error body
        error_body = b""
    if error_body:
        error_message = error_body.decode("utf-8", errors="replace").strip()
    if not error_message and error.reason:
        error_message = str(error.reason)
    if error_message:
        message = f"{message} {error_message}"
    return message
