import io
import json
from urllib.error import HTTPError, URLError

import pytest

from catalog_api.client import ApiError, SetupsApiClient, is_success


class _Response:
    def __init__(self, payload):
        self._body = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")

    def read(self):
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class _Opener:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests = []
        self.timeouts = []

    def __call__(self, request, timeout=None):
        self.requests.append(request)
        self.timeouts.append(timeout)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return _Response(outcome)


def _http_error(code, body=b"", headers=None):
    return HTTPError(
        "https://api.example.com/x", code, "error", headers or {}, io.BytesIO(body)
    )


def _client(opener, sleeps=None):
    return SetupsApiClient(
        base_url="https://api.example.com/",
        timeout=3,
        max_retries=3,
        opener=opener,
        sleep=(sleeps.append if sleeps is not None else lambda _: None),
    )


def test_is_success_accepts_either_flag():
    assert is_success({"success": True})
    assert is_success({"status": True})
    assert not is_success({"status": "true"})
    assert not is_success([])


def test_cascading_filters_posts_json_body():
    opener = _Opener({"status": True, "data": {"classes": [{"id": 1, "name": "GT3"}]}})
    client = _client(opener)

    data = client.fetch_cascading_filters({"category_id": 1, "class_id": 10})

    assert data == {"classes": [{"id": 1, "name": "GT3"}]}
    request = opener.requests[0]
    assert request.full_url == "https://api.example.com/api/v1/setups/filters"
    assert request.get_method() == "POST"
    assert json.loads(request.data) == {"category_id": 1, "class_id": 10}
    assert request.get_header("Content-type") == "application/json"
    assert opener.timeouts == [3]


def test_unsuccessful_payload_raises():
    opener = _Opener({"status": False, "message": "category_id is required"})

    with pytest.raises(ApiError, match="category_id is required"):
        _client(opener).fetch_cascading_filters({})


def test_search_returns_list_of_mappings():
    opener = _Opener({"success": True, "data": [{"id": 1}, "junk", {"id": 2}]})

    assert _client(opener).search_setups({"category_id": 2}) == [{"id": 1}, {"id": 2}]


def test_rate_limit_is_retried_after_delay():
    sleeps = []
    opener = _Opener(
        _http_error(429, headers={"Retry-After": "2"}),
        {"success": True, "data": []},
    )

    assert _client(opener, sleeps).fetch_categories() == []
    assert sleeps == [2.0]
    assert len(opener.requests) == 2


def test_rate_limit_gives_up_after_max_retries():
    opener = _Opener(*[_http_error(429) for _ in range(3)])

    with pytest.raises(ApiError) as excinfo:
        _client(opener, []).fetch_categories()
    assert excinfo.value.status_code == 429


def test_http_error_keeps_status_and_body():
    opener = _Opener(_http_error(500, b"upstream exploded"))

    with pytest.raises(ApiError) as excinfo:
        _client(opener).fetch_plans()
    assert excinfo.value.status_code == 500
    assert "upstream exploded" in str(excinfo.value)


def test_transport_error_and_invalid_json_raise_api_error():
    with pytest.raises(ApiError):
        _client(_Opener(URLError("no route"))).fetch_plans()
    with pytest.raises(ApiError, match="invalid JSON"):
        _client(_Opener(b"<html>")).fetch_plans()


def test_checkout_sends_bearer_token_and_reads_url():
    opener = _Opener({"status": True, "data": {"url": "https://pay.example.com/s/1"}})
    client = _client(opener)

    url = client.create_checkout_session({"plan_id": 4}, access_token="tok")

    assert url == "https://pay.example.com/s/1"
    assert opener.requests[0].get_header("Authorization") == "Bearer tok"


def test_checkout_without_url_fails():
    opener = _Opener({"status": True, "data": {}})

    with pytest.raises(ApiError, match="Checkout failed"):
        _client(opener).create_checkout_session({"plan_id": 4}, access_token=None)


def test_refresh_requires_complete_token_pair():
    opener = _Opener({"status": True, "access_token": "a"})

    with pytest.raises(ApiError, match="Invalid refresh response"):
        _client(opener).refresh_tokens("r")


def test_subscription_calls_send_bearer_token():
    opener = _Opener(
        {"status": True, "data": [{"plan": {"id": 2}, "is_active": True}]},
        {"success": True, "data": {"effective_at": "2026-11-01"}},
    )
    client = _client(opener)

    subscriptions = client.fetch_subscriptions(access_token="tok")
    changed = client.change_subscription({"new_plan_id": 3}, access_token="tok")

    assert subscriptions["data"][0]["plan"] == {"id": 2}
    assert changed == {"effective_at": "2026-11-01"}
    assert opener.requests[0].get_method() == "GET"
    assert opener.requests[0].full_url == "https://api.example.com/api/v1/subscriptions"
    assert opener.requests[1].full_url == "https://api.example.com/api/v1/subscription/change"
    assert all(request.get_header("Authorization") == "Bearer tok" for request in opener.requests)


def test_trial_start_failure_raises_with_message():
    opener = _Opener({"status": False, "message": "Trial already used"})

    with pytest.raises(ApiError, match="Trial already used"):
        _client(opener).start_trial({"plan_id": 3}, access_token="tok")


def test_billing_portal_url_is_optional():
    opener = _Opener({"status": True, "url": "https://billing.example.com"}, {"status": True})
    client = _client(opener)

    assert client.create_billing_portal_session(access_token="tok") == "https://billing.example.com"
    assert client.create_billing_portal_session(access_token="tok") is None
