"""Plans pass-through, session token hand-off and the purchase flow API."""

from __future__ import annotations

import uuid
from typing import Any, Callable, Mapping

from flask import Blueprint, current_app, jsonify, session

from catalog_api import auth
from catalog_api.client import ApiError
from routes.api_utils import BadRequestError, UnauthorizedError, handle_api_errors, json_body
from setups.car_access import CarAccessFlow
from setups.plans import PlanFlow, PlanFlowError
from setups.sessions import SessionRegistry
from setups.subscriptions import FreeTrialFlow, GameAccessFlow

pricing_blueprint = Blueprint("pricing", __name__)

FLOW_SESSION_KEY = "purchase_flow_id"

_context: dict[str, Any] = {}


def configure(context: Mapping[str, Any]) -> None:
    """Inject the API client, category catalog and purchase flow registry."""
    _context.update(context)


def _ctx(key: str) -> Any:
    if key not in _context:
        raise RuntimeError(f"pricing routes missing context value: {key}")
    return _context[key]


def _token_store() -> auth.TokenStore:
    return auth.TokenStore(session)


def _require_session() -> auth.TokenStore:
    store = _token_store()
    if not store.has_session():
        raise UnauthorizedError("Login required")
    return store


def _authenticated(store: auth.TokenStore) -> Callable[[Callable[[str | None], Any]], Any]:
    client = _ctx("api_client")
    return lambda call: auth.authenticated_call(store, client, call)


def _flow_for(
    kind: str,
    flow_class: Callable[[Any, str], PlanFlow],
    plan_id: str,
    *,
    fresh: bool = False,
) -> PlanFlow:
    visitor = session.get(FLOW_SESSION_KEY)
    if not visitor:
        visitor = uuid.uuid4().hex
        session[FLOW_SESSION_KEY] = visitor
    flow, _ = _ctx("flows").get_or_create(
        (visitor, kind, str(plan_id)),
        lambda: flow_class(_ctx("api_client"), plan_id),
        replace=fresh,
    )
    with flow.lock:
        flow.ensure_plan()
    return flow


def _game_access_flow(plan_id: str, *, fresh: bool = False) -> GameAccessFlow:
    flow = _flow_for("game-access", GameAccessFlow, plan_id, fresh=fresh)
    with flow.lock:
        if fresh or not flow.games:
            flow.set_games(_ctx("catalog").categories())
    return flow


@pricing_blueprint.route("/api/plans")
def api_plans():
    try:
        return jsonify(_ctx("api_client").fetch_plans())
    except ApiError as exc:
        current_app.logger.warning("Plans request failed: %s", exc)
        return jsonify({"status": False, "message": str(exc), "data": []}), 500


@pricing_blueprint.route("/api/auth/session", methods=["POST"])
@handle_api_errors
def api_store_session():
    payload = json_body()
    missing = [
        key for key in ("access_token", "refresh_token", "expires_in") if not payload.get(key)
    ]
    if missing:
        raise BadRequestError(f"missing fields: {', '.join(missing)}")
    _token_store().store_auth_data(payload)
    return jsonify({"authenticated": True})


@pricing_blueprint.route("/api/auth/logout", methods=["POST"])
@handle_api_errors
def api_logout():
    auth.logout(_token_store(), _ctx("api_client"))
    return jsonify({"authenticated": False})


@pricing_blueprint.route("/api/pricing/car-access/<plan_id>")
@handle_api_errors
def api_car_access(plan_id: str):
    _require_session()
    flow = _flow_for("car-access", CarAccessFlow, plan_id, fresh=True)
    with flow.lock:
        data = flow.snapshot()
    data["games"] = [category.to_dict() for category in _ctx("catalog").categories()]
    return jsonify(data)


@pricing_blueprint.route("/api/pricing/car-access/<plan_id>/game", methods=["POST"])
@handle_api_errors
def api_car_access_game(plan_id: str):
    _require_session()
    flow = _flow_for("car-access", CarAccessFlow, plan_id)
    with flow.lock:
        flow.select_game(json_body().get("category_id"))
        return jsonify(flow.snapshot())


@pricing_blueprint.route("/api/pricing/car-access/<plan_id>/class", methods=["POST"])
@handle_api_errors
def api_car_access_class(plan_id: str):
    _require_session()
    flow = _flow_for("car-access", CarAccessFlow, plan_id)
    with flow.lock:
        flow.select_class(json_body().get("class_id"))
        return jsonify(flow.snapshot())


@pricing_blueprint.route("/api/pricing/car-access/<plan_id>/car", methods=["POST"])
@handle_api_errors
def api_car_access_car(plan_id: str):
    _require_session()
    flow = _flow_for("car-access", CarAccessFlow, plan_id)
    with flow.lock:
        flow.select_car(json_body().get("car_id"))
        return jsonify(flow.snapshot())


@pricing_blueprint.route("/api/pricing/car-access/<plan_id>/search", methods=["POST"])
@handle_api_errors
def api_car_access_search(plan_id: str):
    _require_session()
    flow = _flow_for("car-access", CarAccessFlow, plan_id)
    with flow.lock:
        flow.search()
        return jsonify(flow.snapshot())


@pricing_blueprint.route("/api/pricing/car-access/<plan_id>/unlock", methods=["POST"])
@handle_api_errors
def api_car_access_unlock(plan_id: str):
    store = _require_session()
    flow = _flow_for("car-access", CarAccessFlow, plan_id)
    try:
        with flow.lock:
            url = flow.unlock(_authenticated(store))
    except PlanFlowError as exc:
        raise BadRequestError(str(exc)) from exc
    return jsonify({"url": url})


@pricing_blueprint.route("/api/pricing/game-access/<plan_id>")
@handle_api_errors
def api_game_access(plan_id: str):
    _require_session()
    flow = _game_access_flow(plan_id, fresh=True)
    with flow.lock:
        return jsonify(flow.snapshot())


@pricing_blueprint.route("/api/pricing/game-access/<plan_id>/game", methods=["POST"])
@handle_api_errors
def api_game_access_game(plan_id: str):
    _require_session()
    flow = _game_access_flow(plan_id)
    with flow.lock:
        flow.select_game(json_body().get("category_id"))
        return jsonify(flow.snapshot())


@pricing_blueprint.route("/api/pricing/game-access/<plan_id>/subscribe", methods=["POST"])
@handle_api_errors
def api_game_access_subscribe(plan_id: str):
    store = _require_session()
    flow = _game_access_flow(plan_id)
    try:
        with flow.lock:
            url = flow.subscribe(_authenticated(store))
    except PlanFlowError as exc:
        raise BadRequestError(str(exc)) from exc
    return jsonify({"url": url})


@pricing_blueprint.route("/api/pricing/free-trial-access/<plan_id>")
@handle_api_errors
def api_free_trial(plan_id: str):
    flow = _flow_for("free-trial-access", FreeTrialFlow, plan_id, fresh=True)
    with flow.lock:
        data = flow.snapshot()
    data["authenticated"] = _token_store().has_session()
    return jsonify(data)


def _free_trial_action(
    plan_id: str, action: Callable[[FreeTrialFlow, Callable[..., Any]], Any]
) -> Any:
    store = _require_session()
    flow = _flow_for("free-trial-access", FreeTrialFlow, plan_id)
    try:
        with flow.lock:
            return action(flow, _authenticated(store))
    except PlanFlowError as exc:
        raise BadRequestError(str(exc)) from exc


@pricing_blueprint.route(
    "/api/pricing/free-trial-access/<plan_id>/start-trial", methods=["POST"]
)
@handle_api_errors
def api_free_trial_start(plan_id: str):
    return jsonify(_free_trial_action(plan_id, FreeTrialFlow.start_trial))


@pricing_blueprint.route(
    "/api/pricing/free-trial-access/<plan_id>/continue-payment", methods=["POST"]
)
@handle_api_errors
def api_free_trial_continue_payment(plan_id: str):
    return jsonify(_free_trial_action(plan_id, FreeTrialFlow.continue_payment))


@pricing_blueprint.route(
    "/api/pricing/free-trial-access/<plan_id>/manage-card", methods=["POST"]
)
@handle_api_errors
def api_free_trial_manage_card(plan_id: str):
    return jsonify({"url": _free_trial_action(plan_id, FreeTrialFlow.billing_portal_url)})


__all__ = ["configure", "pricing_blueprint"]
