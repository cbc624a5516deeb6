from tests.app_helpers import option_list

PLANS = {
    "status": True,
    "data": [{"id": 7, "interval": "permanent", "price": "19.99", "currency_symbol": "$"}],
}

LOGIN = {"access_token": "a", "refresh_token": "r", "expires_in": 3600, "user": {"email": "d@example.com"}}


def _car_filters(body):
    if "class_id" in body:
        return {"cars": option_list((21, "Ferrari 296"))}
    return {"classes": option_list((10, "GT3"))}


def test_plans_pass_through(client, fake_api):
    fake_api.plans = PLANS

    response = client.get("/api/plans")

    assert response.status_code == 200
    assert response.get_json() == PLANS


def test_plans_failure_returns_empty_data(client):
    response = client.get("/api/plans")

    assert response.status_code == 500
    assert response.get_json()["status"] is False
    assert response.get_json()["data"] == []


def test_car_access_requires_login(client):
    assert client.get("/api/pricing/car-access/7").status_code == 401


def test_session_handoff_validates_payload(client):
    assert client.post("/api/auth/session", json={"access_token": "a"}).status_code == 400


def test_car_access_flow_to_checkout(client, fake_api):
    fake_api.plans = PLANS
    fake_api.car_filters = _car_filters
    client.post("/api/auth/session", json=LOGIN)

    state = client.get("/api/pricing/car-access/7").get_json()
    assert state["plan"]["id"] == 7
    assert state["price_label"] == "$19.99"
    assert [game["id"] for game in state["games"]] == [1, 2, 3]

    state = client.post("/api/pricing/car-access/7/game", json={"category_id": 1}).get_json()
    assert state["classes"] == [{"id": 10, "name": "GT3"}]
    state = client.post("/api/pricing/car-access/7/class", json={"class_id": 10}).get_json()
    assert [car["id"] for car in state["cars"]] == [21]
    client.post("/api/pricing/car-access/7/car", json={"car_id": 21})
    state = client.post("/api/pricing/car-access/7/search").get_json()
    assert state["searched_car"]["name"] == "Ferrari 296"

    response = client.post("/api/pricing/car-access/7/unlock")

    assert response.get_json() == {"url": fake_api.checkout_url}
    assert fake_api.checkout_calls == [
        ({"plan_id": 7, "category_id": 1, "class_id": 10, "car_id": 21}, "a")
    ]


def test_unlock_before_search_is_rejected(client, fake_api):
    fake_api.plans = PLANS
    client.post("/api/auth/session", json=LOGIN)

    response = client.post("/api/pricing/car-access/7/unlock")

    assert response.status_code == 400


def test_logout_clears_session(client, fake_api):
    client.post("/api/auth/session", json=LOGIN)

    client.post("/api/auth/logout")

    assert fake_api.logout_calls == [("d@example.com", "r")]
    assert client.get("/api/pricing/car-access/7").status_code == 401


SUBSCRIPTION_PLANS = {
    "status": True,
    "data": [
        {"id": 2, "name": "Pro", "interval": "monthly", "price": "9.99", "currency_symbol": "$"},
        {"id": 3, "name": "Elite", "interval": "monthly", "price": "12", "currency_symbol": "$"},
    ],
}


def test_purchase_flows_are_bounded_per_app(fake_api, engine):
    from web.app_factory import create_app

    app = create_app(
        {'TESTING': True, 'MAX_PURCHASE_FLOWS': 10}, api_client=fake_api, engine=engine
    )
    client = app.test_client()
    fake_api.plans = PLANS
    client.post("/api/auth/session", json=LOGIN)

    for plan_id in range(50):
        client.get(f"/api/pricing/car-access/{plan_id}")

    assert len(app.extensions["setups"]["flows"]) == 10


def test_game_access_flow_to_checkout(client, fake_api):
    fake_api.plans = SUBSCRIPTION_PLANS
    client.post("/api/auth/session", json=LOGIN)

    state = client.get("/api/pricing/game-access/2").get_json()
    assert state["price_label"] == "$9.99"
    assert [game["id"] for game in state["games"]] == [1, 2, 3]

    state = client.post("/api/pricing/game-access/2/game", json={"category_id": 2}).get_json()
    assert state["game"] == 2
    response = client.post("/api/pricing/game-access/2/subscribe")

    assert response.get_json() == {"url": fake_api.checkout_url}
    assert fake_api.checkout_calls == [({"plan_id": 2, "category_id": 2}, "a")]


def test_game_access_subscribe_without_game_is_rejected(client, fake_api):
    fake_api.plans = SUBSCRIPTION_PLANS
    client.post("/api/auth/session", json=LOGIN)

    assert client.post("/api/pricing/game-access/2/subscribe").status_code == 400
    assert client.get("/api/pricing/game-access/3").get_json()["error"] == "Plan not found"


def test_free_trial_page_is_public_but_actions_need_login(client, fake_api):
    fake_api.plans = SUBSCRIPTION_PLANS

    state = client.get("/api/pricing/free-trial-access/3").get_json()

    assert state["authenticated"] is False
    assert state["interval_label"] == "Monthly"
    assert client.post("/api/pricing/free-trial-access/3/start-trial").status_code == 401


def test_free_trial_start_and_payment(client, fake_api):
    fake_api.plans = SUBSCRIPTION_PLANS
    client.post("/api/auth/session", json=LOGIN)

    started = client.post("/api/pricing/free-trial-access/3/start-trial").get_json()
    payment = client.post("/api/pricing/free-trial-access/3/continue-payment").get_json()
    portal = client.post("/api/pricing/free-trial-access/3/manage-card").get_json()

    assert started == {"type": "free_trial_success"}
    assert fake_api.trial_calls == [({"plan_id": 3}, "a")]
    assert payment == {"type": "checkout", "url": fake_api.checkout_url}
    assert portal == {"url": fake_api.billing_portal_url}
