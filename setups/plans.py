"""Plan lookup and checkout plumbing shared by the purchase flows."""

from __future__ import annotations

from threading import RLock
from typing import Any, Callable, Mapping, Protocol

import config
from catalog_api.client import ApiError, is_success
from helpers import _normalize_display_name, coerce_option_id

SUBSCRIPTION_INTERVALS = frozenset({"monthly", "yearly"})

AuthenticatedCall = Callable[[Callable[[str | None], Any]], Any]


class PlansApi(Protocol):
    def fetch_plans(self) -> dict[str, Any]: ...

    def create_checkout_session(
        self, payload: Mapping[str, Any], *, access_token: str | None
    ) -> str: ...


class PlanFlowError(RuntimeError):
    """Raised when a purchase flow cannot proceed (missing plan or selection)."""


def has_active_plan_except(
    payload: Any, excluded_plan_id: int | None = None
) -> bool:
    """Return ``True`` when ``payload`` lists an active subscription to another plan.

    The permanent car access plan is excluded unless ``excluded_plan_id`` says
    otherwise. Malformed or unsuccessful payloads count as no active plan.
    """

    excluded = config.CAR_ACCESS_PLAN_ID if excluded_plan_id is None else excluded_plan_id
    if not is_success(payload) or not isinstance(payload.get("data"), list):
        return False
    for subscription in payload["data"]:
        if not isinstance(subscription, Mapping) or subscription.get("is_active") is not True:
            continue
        plan = subscription.get("plan")
        plan_id = coerce_option_id(plan.get("id")) if isinstance(plan, Mapping) else None
        if plan_id and plan_id != excluded:
            return True
    return False


class PlanFlow:
    """A purchase page bound to one plan id.

    Subclasses decide which plans the page accepts through ``accepts_plan``.
    Callers sharing a flow across threads hold ``lock``.
    """

    def __init__(self, client: PlansApi, plan_id: Any) -> None:
        self._client = client
        self.lock = RLock()
        self.plan_id = coerce_option_id(plan_id)
        self.plan: dict[str, Any] | None = None
        self.error: str | None = None

    def accepts_plan(self, plan: Mapping[str, Any]) -> bool:
        raise NotImplementedError

    def load_plan(self) -> dict[str, Any] | None:
        """Find the accepted plan matching ``plan_id``; sets ``error`` otherwise."""

        self.plan = None
        if self.plan_id is None:
            self.error = "Invalid plan"
            return None
        try:
            payload = self._client.fetch_plans()
        except ApiError as exc:
            self.error = str(exc) or "Unable to load plan"
            return None
        plans = payload.get("data")
        if not payload.get("status") or not isinstance(plans, list):
            self.error = _normalize_display_name(payload.get("message")) or "Failed to load plans"
            return None
        for plan in plans:
            if (
                isinstance(plan, Mapping)
                and str(plan.get("id")) == str(self.plan_id)
                and self.accepts_plan(plan)
            ):
                self.plan = dict(plan)
                self.error = None
                return self.plan
        self.error = "Plan not found"
        return None

    def ensure_plan(self) -> None:
        if self.plan is None and self.error is None:
            self.load_plan()

    def price_label(self) -> str:
        if not self.plan:
            return "-"
        return f"{self.plan.get('currency_symbol') or ''}{self.plan.get('price') or ''}"

    def _require_plan(self) -> int:
        if self.plan is None or self.plan_id is None:
            raise PlanFlowError("Plan not loaded")
        return self.plan_id

    def _checkout(self, payload: Mapping[str, Any], call_authenticated: AuthenticatedCall) -> str:
        return call_authenticated(
            lambda token: self._client.create_checkout_session(payload, access_token=token)
        )

    def snapshot(self) -> dict[str, Any]:
        return {
            "plan": self.plan,
            "price_label": self.price_label(),
            "error": self.error,
        }


__all__ = [
    "AuthenticatedCall",
    "PlanFlow",
    "PlanFlowError",
    "SUBSCRIPTION_INTERVALS",
    "has_active_plan_except",
]
