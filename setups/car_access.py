"""Single-car permanent access purchase flow (game -> class -> car)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

import config
from catalog_api.client import ApiError
from helpers import _normalize_display_name, coerce_option_id
from setups.options import FilterOption, parse_options
from setups.plans import AuthenticatedCall, PlanFlow, PlanFlowError, PlansApi
from setups.registry import FilterDimension

logger = logging.getLogger(__name__)

PERMANENT_INTERVAL = "permanent"
DEFAULT_CAR_IMAGE = "/images/cars/HYMO_Livery_GT3_LMU.png"


class CarAccessApi(PlansApi, Protocol):
    def fetch_car_filters(self, body: Mapping[str, Any]) -> dict[str, Any]: ...


@dataclass(frozen=True)
class CarOption:
    id: int
    name: str
    image: str | None = None

    def image_src(self, image_base: str | None = None) -> str:
        if not self.image:
            return DEFAULT_CAR_IMAGE
        if self.image.startswith("http"):
            return self.image
        base = (image_base or config.API_BASE_URL).rstrip("/")
        return f"{base}/{self.image.lstrip('/')}"

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "image": self.image_src()}


def parse_cars(raw: Any) -> list[CarOption]:
    if not isinstance(raw, list):
        return []
    cars: list[CarOption] = []
    for item in raw:
        if not isinstance(item, Mapping):
            continue
        car_id = coerce_option_id(item.get("id"))
        name = _normalize_display_name(item.get("name")) or _normalize_display_name(
            item.get("label")
        )
        if car_id is None or not name:
            continue
        image = item.get("image")
        cars.append(CarOption(car_id, name, image if isinstance(image, str) else None))
    return cars


class CarAccessError(PlanFlowError):
    """Raised when the flow cannot proceed (missing plan or incomplete selection)."""


class CarAccessFlow(PlanFlow):
    """Selections and option lists of the car access purchase page."""

    def __init__(self, client: CarAccessApi, plan_id: Any) -> None:
        super().__init__(client, plan_id)
        self._client: CarAccessApi = client
        self.game: int | None = None
        self.car_class: int | None = None
        self.car: int | None = None
        self.classes: list[FilterOption] = []
        self.cars: list[CarOption] = []
        self.searched_car: CarOption | None = None

    def accepts_plan(self, plan: Mapping[str, Any]) -> bool:
        return plan.get("interval") == PERMANENT_INTERVAL

    def _fetch(self, body: Mapping[str, Any]) -> dict[str, Any]:
        try:
            return self._client.fetch_car_filters(body)
        except ApiError as exc:
            logger.warning("Car filters request failed for %s: %s", dict(body), exc)
            return {}

    def select_game(self, category_id: Any) -> list[FilterOption]:
        """Choose a game; downstream choices reset and classes are reloaded."""

        self.game = coerce_option_id(category_id)
        self.car_class = None
        self.car = None
        self.cars = []
        self.searched_car = None
        self.classes = []
        if self.game is None:
            return self.classes
        data = self._fetch({"category_id": self.game})
        raw = data.get("classes", data.get("class"))
        self.classes = parse_options(raw, FilterDimension.CLASS)
        return self.classes

    def select_class(self, class_id: Any) -> list[CarOption]:
        """Choose a class; the car choice resets and cars are reloaded."""

        self.car_class = coerce_option_id(class_id)
        self.car = None
        self.cars = []
        self.searched_car = None
        if self.game is None or self.car_class is None:
            return self.cars
        data = self._fetch({"category_id": self.game, "class_id": self.car_class})
        self.cars = parse_cars(data.get("cars", data.get("car")))
        return self.cars

    def select_car(self, car_id: Any) -> CarOption | None:
        self.searched_car = None
        wanted = coerce_option_id(car_id)
        match = next((car for car in self.cars if car.id == wanted), None)
        self.car = match.id if match else None
        return match

    def search(self) -> CarOption | None:
        if self.game is None or self.car_class is None or self.car is None:
            return None
        self.searched_car = next((car for car in self.cars if car.id == self.car), None)
        return self.searched_car

    def checkout_payload(self) -> dict[str, int]:
        plan_id = self._require_plan()
        if self.searched_car is None or self.game is None or self.car_class is None:
            raise CarAccessError("Select a game, class and car first")
        return {
            "plan_id": plan_id,
            "category_id": self.game,
            "class_id": self.car_class,
            "car_id": self.searched_car.id,
        }

    def unlock(self, call_authenticated: AuthenticatedCall) -> str:
        """Create the checkout session and return its URL.

        ``call_authenticated`` runs the checkout call with a bearer token,
        refreshing it when needed.
        """

        return self._checkout(self.checkout_payload(), call_authenticated)

    def snapshot(self) -> dict[str, Any]:
        data = super().snapshot()
        data.update({
            "game": self.game,
            "class": self.car_class,
            "car": self.car,
            "classes": [option.to_dict() for option in self.classes],
            "cars": [car.to_dict() for car in self.cars],
            "searched_car": self.searched_car.to_dict() if self.searched_car else None,
        })
        return data


__all__ = [
    "CarAccessError",
    "CarAccessFlow",
    "CarOption",
    "PERMANENT_INTERVAL",
    "parse_cars",
]
