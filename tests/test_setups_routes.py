from catalog_api.client import ApiError
from tests.app_helpers import option_list

CATEGORIES = [
    {"id": 3, "name": "Le Mans Ultimate", "slug": "le-mans-ultimate"},
    {"id": 2, "name": "Assetto Corsa Competizione", "slug": "acc"},
]


def test_index_redirects_to_lowest_category(client, fake_api):
    fake_api.categories = CATEGORIES

    response = client.get("/setups")

    assert response.status_code == 302
    assert response.headers["Location"].endswith("/setups/acc")


def test_index_falls_back_to_builtin_categories(client):
    response = client.get("/setups")

    assert response.headers["Location"].endswith("/setups/iracing")


def test_unknown_category_renders_404(client, fake_api):
    fake_api.categories = CATEGORIES

    response = client.get("/setups/unknown-game")

    assert response.status_code == 404
    assert b"Category not found" in response.data


def test_page_renders_options(client, fake_api):
    fake_api.categories = CATEGORIES
    fake_api.filters = {"cars": option_list((22, "BMW M4 GT3"))}

    response = client.get("/setups/acc/bmw-m4-gt3/spa?version=1.9")

    assert response.status_code == 200
    assert b"BMW M4 GT3" in response.data
    assert fake_api.filter_calls[0] == {"category_id": 2}


def test_filter_change_and_search_return_canonical_url(client, fake_api):
    fake_api.categories = CATEGORIES
    fake_api.filters = {
        "cars": option_list((22, "BMW M4 GT3"), (23, "Porsche 911 GT3 R")),
        "tracks": option_list((32, "Spa"), (33, "Monza")),
        "versions": option_list((5, "1.9"), (6, "1.10")),
    }
    fake_api.results = [
        {"id": 2, "lap_time": "2:19.000"},
        {"id": 1, "lap_time": "2:18.500"},
    ]

    state = client.post("/api/setups/acc/filters", json={"dimension": "car", "value": 22}).get_json()
    assert state["selections"]["car"] == 22
    assert state["order"] == ["car"]
    client.post("/api/setups/acc/filters", json={"dimension": "version", "value": "5"})

    data = client.post("/api/setups/acc/search").get_json()

    assert data["url"] == "/setups/acc/bmw-m4-gt3?version=1.9"
    assert data["replace"] is True
    assert [item["id"] for item in data["items"]] == [1, 2]
    assert data["selected_setup"]["id"] == 1
    assert fake_api.search_calls == [{"category_id": 2, "car_id": 22, "version_id": 5}]


def test_filter_change_validates_dimension(client, fake_api):
    fake_api.categories = CATEGORIES

    missing = client.post("/api/setups/acc/filters", json={"value": 1})
    unknown = client.post("/api/setups/acc/filters", json={"dimension": "season", "value": 1})

    assert missing.status_code == 400
    assert unknown.status_code == 400
    assert "season" in unknown.get_json()["error"]


def test_results_paging_and_selection(client, fake_api):
    fake_api.categories = CATEGORIES
    fake_api.results = [{"id": i, "lap_time_ms": 1000 + i} for i in range(23)]
    client.post("/api/setups/acc/search")

    page = client.get("/api/setups/acc/results?page=3").get_json()

    assert page["page"] == 3
    assert [item["id"] for item in page["items"]] == [20, 21, 22]
    assert page["visible_pages"] == [1, 2, 3]

    selected = client.post("/api/setups/acc/select", json={"id": 21})
    assert selected.get_json()["selected_setup"]["id"] == 21
    assert client.post("/api/setups/acc/select", json={"id": 99}).status_code == 404


def test_search_failure_returns_empty_results(client, fake_api):
    fake_api.categories = CATEGORIES
    fake_api.search_error = ApiError("timeout")

    data = client.post("/api/setups/acc/search").get_json()

    assert data["items"] == []
    assert data["has_searched"] is True
    assert data["selected_setup"] is None


def test_unknown_category_api_returns_json_404(client, fake_api):
    fake_api.categories = CATEGORIES

    response = client.get("/api/setups/unknown/state")

    assert response.status_code == 404
    assert response.get_json() == {"error": "Category not found"}


def test_filters_proxy_requires_category(client):
    response = client.post("/api/setups/filters", json={"class_id": 1})

    assert response.status_code == 400
    assert response.get_json() == {
        "status": False,
        "message": "category_id is required",
        "data": None,
    }


def test_filters_proxy_forwards_whitelisted_keys(client, fake_api):
    client.post(
        "/api/setups/filters",
        json={"category_id": 1, "class_id": 10, "week": 3, "track_id": "", "admin": True},
    )

    assert fake_api.proxy_calls == [{"category_id": 1, "class_id": 10, "week": 3}]


def test_filters_proxy_reports_upstream_failure(client, fake_api):
    fake_api.filters_error = ApiError("Filters API responded with 503", status_code=503)

    response = client.post("/api/setups/filters", json={"category_id": 1})

    assert response.status_code == 500
    assert response.get_json()["status"] is False
    assert response.get_json()["data"] is None
