import pytest

from catalog_api import auth
from setups.car_access import CarAccessError, CarAccessFlow, DEFAULT_CAR_IMAGE
from tests.app_helpers import option_list

PLANS = {
    "status": True,
    "data": [
        {"id": 4, "interval": "monthly", "price": "9.99", "currency_symbol": "$"},
        {"id": 7, "interval": "permanent", "price": "19.99", "currency_symbol": "$"},
    ],
}


def car_filters(body):
    if "class_id" in body:
        return {
            "cars": [
                {"id": 21, "name": "Ferrari 296", "image": "uploads/cars/296.png"},
                {"id": 22, "label": "BMW M4 GT3"},
            ]
        }
    return {"class": option_list((10, "GT3"), (11, "GT4"))}


@pytest.fixture
def flow(fake_api):
    fake_api.plans = PLANS
    fake_api.car_filters = car_filters
    access = CarAccessFlow(fake_api, "7")
    access.load_plan()
    return access


def test_plan_must_be_permanent(fake_api):
    fake_api.plans = PLANS

    monthly = CarAccessFlow(fake_api, 4)

    assert monthly.load_plan() is None
    assert monthly.error == "Plan not found"


def test_plan_lookup_failure_sets_error(fake_api):
    access = CarAccessFlow(fake_api, 7)

    assert access.load_plan() is None
    assert access.error


def test_game_class_car_flow(flow, fake_api):
    assert flow.price_label() == "$19.99"
    assert [option.id for option in flow.select_game(2)] == [10, 11]

    cars = flow.select_class(10)

    assert [car.name for car in cars] == ["Ferrari 296", "BMW M4 GT3"]
    assert cars[1].image_src() == DEFAULT_CAR_IMAGE
    assert fake_api.car_filter_calls == [
        {"category_id": 2},
        {"category_id": 2, "class_id": 10},
    ]

    flow.select_car(21)
    assert flow.search().id == 21


def test_changing_game_resets_downstream(flow):
    flow.select_game(2)
    flow.select_class(10)
    flow.select_car(21)
    flow.search()

    flow.select_game(3)

    assert flow.car_class is None
    assert flow.car is None
    assert flow.cars == []
    assert flow.searched_car is None


def test_unknown_car_is_ignored(flow):
    flow.select_game(2)
    flow.select_class(10)

    assert flow.select_car(99) is None
    assert flow.car is None
    assert flow.search() is None


def test_fetch_failure_leaves_empty_lists(fake_api):
    fake_api.plans = PLANS
    access = CarAccessFlow(fake_api, 7)

    assert access.select_game(2) == []


def test_unlock_requires_searched_car(flow):
    with pytest.raises(CarAccessError):
        flow.checkout_payload()


def test_unlock_returns_checkout_url(flow, fake_api):
    flow.select_game(2)
    flow.select_class(10)
    flow.select_car(22)
    flow.search()
    store = auth.TokenStore({})
    store.store_auth_data({"access_token": "a", "refresh_token": "r", "expires_in": 60})

    url = flow.unlock(lambda call: auth.authenticated_call(store, fake_api, call))

    assert url == fake_api.checkout_url
    assert fake_api.checkout_calls == [
        ({"plan_id": 7, "category_id": 2, "class_id": 10, "car_id": 22}, "a")
    ]
