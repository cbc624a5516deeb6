"""Subscription purchase flows: game access (Pro) and free trial (Elite)."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Protocol

from catalog_api.client import ApiError
from helpers import coerce_option_id
from setups.catalog import Category
from setups.plans import (
    SUBSCRIPTION_INTERVALS,
    AuthenticatedCall,
    PlanFlow,
    PlanFlowError,
    PlansApi,
    has_active_plan_except,
)

logger = logging.getLogger(__name__)

PRO_PLAN_NAME = "Pro"
ELITE_PLAN_NAME = "Elite"

FREE_TRIAL_SUCCESS = "free_trial_success"
FREE_TRIAL_ERROR = "free_trial_error"
PAYMENT_SUCCESS = "payment_success"
PAYMENT_ERROR = "payment_error"
CHECKOUT_REDIRECT = "checkout"


class SubscriptionsApi(PlansApi, Protocol):
    def fetch_subscriptions(self, *, access_token: str | None) -> dict[str, Any]: ...

    def change_subscription(
        self, payload: Mapping[str, Any], *, access_token: str | None
    ) -> dict[str, Any]: ...

    def start_trial(
        self, payload: Mapping[str, Any], *, access_token: str | None
    ) -> dict[str, Any]: ...

    def create_billing_portal_session(self, *, access_token: str | None) -> str | None: ...


def _is_subscription_plan(plan: Mapping[str, Any], name: str) -> bool:
    return plan.get("name") == name and plan.get("interval") in SUBSCRIPTION_INTERVALS


class GameAccessFlow(PlanFlow):
    """Pro plan checkout scoped to one game."""

    def __init__(self, client: PlansApi, plan_id: Any) -> None:
        super().__init__(client, plan_id)
        self.games: list[Category] = []
        self.game: int | None = None

    def accepts_plan(self, plan: Mapping[str, Any]) -> bool:
        return _is_subscription_plan(plan, PRO_PLAN_NAME)

    def set_games(self, games: Iterable[Category]) -> None:
        self.games = list(games)
        if self.game is not None and not any(game.id == self.game for game in self.games):
            self.game = None

    def select_game(self, category_id: Any) -> Category | None:
        """Choose one of the offered games; anything else clears the choice."""

        wanted = coerce_option_id(category_id)
        match = next((game for game in self.games if game.id == wanted), None)
        self.game = match.id if match else None
        return match

    def checkout_payload(self) -> dict[str, int]:
        plan_id = self._require_plan()
        if self.game is None:
            raise PlanFlowError("Select a game first")
        return {"plan_id": plan_id, "category_id": self.game}

    def subscribe(self, call_authenticated: AuthenticatedCall) -> str:
        """Create the checkout session and return its URL."""

        return self._checkout(self.checkout_payload(), call_authenticated)

    def snapshot(self) -> dict[str, Any]:
        data = super().snapshot()
        data["games"] = [game.to_dict() for game in self.games]
        data["game"] = self.game
        return data


class FreeTrialFlow(PlanFlow):
    """Elite plan page: start a trial or pay straight away.

    Visitors who already hold another active subscription are switched to
    this plan instead of starting a trial or a new checkout.
    """

    def __init__(self, client: SubscriptionsApi, plan_id: Any) -> None:
        super().__init__(client, plan_id)
        self._client: SubscriptionsApi = client

    def accepts_plan(self, plan: Mapping[str, Any]) -> bool:
        return _is_subscription_plan(plan, ELITE_PLAN_NAME)

    def interval_label(self) -> str:
        if self.plan and self.plan.get("interval") == "yearly":
            return "Yearly"
        return "Monthly"

    def has_active_plan(self, call_authenticated: AuthenticatedCall) -> bool:
        """Return whether the visitor already holds another active subscription.

        An error response counts as no active plan; a transport failure is
        raised.
        """

        try:
            payload = call_authenticated(
                lambda token: self._client.fetch_subscriptions(access_token=token)
            )
        except ApiError as exc:
            if exc.status_code is None:
                raise
            logger.info("Subscriptions lookup failed with %s; assuming none", exc.status_code)
            return False
        return has_active_plan_except(payload)

    def start_trial(self, call_authenticated: AuthenticatedCall) -> dict[str, Any]:
        plan_id = self._require_plan()
        try:
            if self.has_active_plan(call_authenticated):
                call_authenticated(
                    lambda token: self._client.change_subscription(
                        {"plan_id": plan_id}, access_token=token
                    )
                )
            else:
                call_authenticated(
                    lambda token: self._client.start_trial(
                        {"plan_id": plan_id}, access_token=token
                    )
                )
        except ApiError as exc:
            logger.warning("Free trial for plan %s failed: %s", plan_id, exc)
            return {"type": FREE_TRIAL_ERROR}
        return {"type": FREE_TRIAL_SUCCESS}

    def continue_payment(self, call_authenticated: AuthenticatedCall) -> dict[str, Any]:
        """Switch an existing subscription or open a checkout for a new one."""

        plan_id = self._require_plan()
        try:
            if not self.has_active_plan(call_authenticated):
                url = self._checkout({"plan_id": plan_id}, call_authenticated)
                return {"type": CHECKOUT_REDIRECT, "url": url}
            data = call_authenticated(
                lambda token: self._client.change_subscription(
                    {"new_plan_id": plan_id}, access_token=token
                )
            )
        except ApiError as exc:
            logger.warning("Payment for plan %s failed: %s", plan_id, exc)
            return {"type": PAYMENT_ERROR}
        effective_at = data.get("effective_at") or None
        return {
            "type": PAYMENT_SUCCESS,
            "plan_name": f"{ELITE_PLAN_NAME} ({self.interval_label()})",
            "effective_at": effective_at,
            "immediate": effective_at is None,
        }

    def billing_portal_url(self, call_authenticated: AuthenticatedCall) -> str | None:
        try:
            return call_authenticated(
                lambda token: self._client.create_billing_portal_session(access_token=token)
            )
        except ApiError as exc:
            logger.warning("Billing portal request failed: %s", exc)
            return None

    def snapshot(self) -> dict[str, Any]:
        data = super().snapshot()
        data["interval_label"] = self.interval_label()
        return data


__all__ = [
    "CHECKOUT_REDIRECT",
    "ELITE_PLAN_NAME",
    "FREE_TRIAL_ERROR",
    "FREE_TRIAL_SUCCESS",
    "FreeTrialFlow",
    "GameAccessFlow",
    "PAYMENT_ERROR",
    "PAYMENT_SUCCESS",
    "PRO_PLAN_NAME",
]
