"""Access/refresh token storage and authenticated API calls."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Mapping, MutableMapping, TypeVar

from catalog_api.client import ApiError, SetupsApiClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

ACCESS_TOKEN_KEY = "hymo_access_token"
REFRESH_TOKEN_KEY = "hymo_refresh_token"
USER_KEY = "hymo_user"
TOKEN_EXPIRY_KEY = "hymo_token_expiry"


class TokenStore:
    """Token bookkeeping on top of a mutable mapping such as the Flask session."""

    def __init__(
        self,
        storage: MutableMapping[str, Any],
        *,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._storage = storage
        self._clock = clock or time.time

    def store_auth_data(self, data: Mapping[str, Any]) -> None:
        """Persist a login response: both tokens, the user and the expiry."""

        self.store_refreshed_tokens(data)
        self._storage[USER_KEY] = dict(data.get("user") or {})

    def store_refreshed_tokens(self, data: Mapping[str, Any]) -> None:
        expires_in = float(data.get("expires_in") or 0)
        self._storage[ACCESS_TOKEN_KEY] = data["access_token"]
        self._storage[REFRESH_TOKEN_KEY] = data["refresh_token"]
        self._storage[TOKEN_EXPIRY_KEY] = self._clock() + expires_in

    @property
    def access_token(self) -> str | None:
        return self._storage.get(ACCESS_TOKEN_KEY)

    @property
    def refresh_token(self) -> str | None:
        return self._storage.get(REFRESH_TOKEN_KEY)

    @property
    def user(self) -> dict[str, Any] | None:
        return self._storage.get(USER_KEY)

    def is_expired(self) -> bool:
        expiry = self._storage.get(TOKEN_EXPIRY_KEY)
        if expiry is None:
            return True
        try:
            return self._clock() >= float(expiry)
        except (TypeError, ValueError):
            return True

    def has_session(self) -> bool:
        return self.access_token is not None or self.refresh_token is not None

    def is_authenticated(self) -> bool:
        return self.access_token is not None and not self.is_expired()

    def clear(self) -> None:
        for key in (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, USER_KEY, TOKEN_EXPIRY_KEY):
            self._storage.pop(key, None)


def refresh_access_token(store: TokenStore, client: SetupsApiClient) -> None:
    refresh_token = store.refresh_token
    if not refresh_token:
        raise ApiError("Missing refresh token", status_code=401)
    store.store_refreshed_tokens(client.refresh_tokens(refresh_token))


def authenticated_call(
    store: TokenStore,
    client: SetupsApiClient,
    call: Callable[[str | None], T],
) -> T:
    """Invoke ``call`` with a bearer token, refreshing it at most once.

    An expired token is refreshed up front when a refresh token exists; a 401
    from ``call`` triggers one refresh and one retry. A failed refresh clears
    the stored session and the original outcome is surfaced.
    """

    if store.is_expired() and store.refresh_token:
        try:
            refresh_access_token(store, client)
        except ApiError as exc:
            logger.info("Token refresh failed; clearing session: %s", exc)
            store.clear()

    try:
        return call(store.access_token)
    except ApiError as exc:
        if exc.status_code != 401 or not store.refresh_token:
            raise
        try:
            refresh_access_token(store, client)
        except ApiError as refresh_exc:
            logger.info("Token refresh after 401 failed; clearing session: %s", refresh_exc)
            store.clear()
            raise exc
        return call(store.access_token)


def logout(store: TokenStore, client: SetupsApiClient) -> None:
    """Notify the API (best effort) and always clear local tokens."""

    refresh_token = store.refresh_token
    email = (store.user or {}).get("email")
    try:
        if refresh_token and email:
            client.logout(email, refresh_token)
    except ApiError as exc:
        logger.warning("Logout request failed: %s", exc)
    finally:
        store.clear()


__all__ = [
    "TokenStore",
    "authenticated_call",
    "logout",
    "refresh_access_token",
]
