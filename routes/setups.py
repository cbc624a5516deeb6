"""Setup browsing pages and the JSON API driving the cascading filters."""

from __future__ import annotations

import uuid
from typing import Any, Mapping

from flask import (
    Blueprint,
    current_app,
    jsonify,
    redirect,
    render_template,
    request,
    session,
    url_for,
)

from catalog_api.client import ApiError
from routes.api_utils import BadRequestError, NotFoundError, handle_api_errors, json_body
from setups.browser import SetupBrowser
from setups.catalog import Category
from setups.registry import ALLOWED_REQUEST_KEYS
from setups.results import visible_page_numbers

setups_blueprint = Blueprint("setups", __name__)

BROWSER_SESSION_KEY = "setups_browser_id"

_context: dict[str, Any] = {}


def configure(context: Mapping[str, Any]) -> None:
    """Inject the category catalog, browser registry and API client."""
    _context.update(context)


def _ctx(key: str) -> Any:
    if key not in _context:
        raise RuntimeError(f"setups routes missing context value: {key}")
    return _context[key]


def _visitor_key() -> str:
    key = session.get(BROWSER_SESSION_KEY)
    if not key:
        key = uuid.uuid4().hex
        session[BROWSER_SESSION_KEY] = key
    return key


def _category_or_404(slug: str) -> Category:
    category = _ctx("catalog").find(slug)
    if category is None:
        raise NotFoundError("Category not found")
    return category


def _browser_for(category: Category) -> SetupBrowser:
    browser, created = _ctx("browsers").get(_visitor_key(), category)
    if created:
        with browser.lock:
            browser.load()
    return browser


def _results_payload(browser: SetupBrowser) -> dict[str, Any]:
    view = browser.page_view()
    data = view.to_dict()
    data["visible_pages"] = visible_page_numbers(view.page, view.total_pages)
    data["selected_setup"] = browser.selected_setup
    data["has_searched"] = browser.has_searched
    return data


@setups_blueprint.route("/setups")
def setups_index():
    category = _ctx("catalog").default()
    slug = category.slug if category else "iRacing"
    return redirect(url_for("setups.setups_page", category=slug.lower()))


@setups_blueprint.route("/setups/<category>")
@setups_blueprint.route("/setups/<category>/<path:slug>")
def setups_page(category: str, slug: str | None = None):
    current = _ctx("catalog").find(category)
    if current is None:
        return render_template("404.html", message="Category not found"), 404

    segments = [segment for segment in (slug or "").split("/") if segment]
    browser = _ctx("browsers").reset(_visitor_key(), current)
    with browser.lock:
        browser.bootstrap_from_location(segments, request.args.items(multi=True))
        state = browser.snapshot()
    return render_template(
        "setups.html",
        category=current,
        state=state,
        results=_results_payload(browser),
    )


@setups_blueprint.route("/api/setups/<category>/state")
@handle_api_errors
def api_state(category: str):
    browser = _browser_for(_category_or_404(category))
    with browser.lock:
        return jsonify(browser.snapshot())


@setups_blueprint.route("/api/setups/<category>/filters", methods=["POST"])
@handle_api_errors
def api_change_filter(category: str):
    payload = json_body()
    if "dimension" not in payload:
        raise BadRequestError("dimension is required")
    browser = _browser_for(_category_or_404(category))
    with browser.lock:
        try:
            cleared = browser.user_change(payload["dimension"], payload.get("value"))
        except ValueError as exc:
            raise BadRequestError(str(exc)) from exc
        data = browser.snapshot()
    data["cleared"] = [dimension.value for dimension in cleared]
    return jsonify(data)


@setups_blueprint.route("/api/setups/<category>/search", methods=["POST"])
@handle_api_errors
def api_search(category: str):
    browser = _browser_for(_category_or_404(category))
    with browser.lock:
        url = browser.search(update_url=True)
        data = _results_payload(browser)
    data["url"] = url
    data["replace"] = True
    return jsonify(data)


@setups_blueprint.route("/api/setups/<category>/results")
@handle_api_errors
def api_results(category: str):
    browser = _browser_for(_category_or_404(category))
    with browser.lock:
        browser.go_to_page(request.args.get("page", 1))
        return jsonify(_results_payload(browser))


@setups_blueprint.route("/api/setups/<category>/select", methods=["POST"])
@handle_api_errors
def api_select_setup(category: str):
    payload = json_body()
    if payload.get("id") in (None, ""):
        raise BadRequestError("id is required")
    browser = _browser_for(_category_or_404(category))
    with browser.lock:
        selected = browser.select_setup(payload["id"])
    if selected is None:
        raise NotFoundError("Setup not found in current results")
    return jsonify({"selected_setup": selected})


@setups_blueprint.route("/api/setups/filters", methods=["POST"])
def api_filters_proxy():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = {}
    category_id = payload.get("category_id")
    if not category_id:
        return (
            jsonify({"status": False, "message": "category_id is required", "data": None}),
            400,
        )

    body: dict[str, Any] = {"category_id": category_id}
    for key in ALLOWED_REQUEST_KEYS:
        value = payload.get(key)
        if value is not None and value != "":
            body[key] = value

    try:
        data = _ctx("api_client").filters_payload(body)
    except ApiError as exc:
        current_app.logger.warning("Filters proxy failed for %s: %s", body, exc)
        return jsonify({"status": False, "message": str(exc), "data": None}), 500
    return jsonify(data)


@setups_blueprint.app_errorhandler(404)
def page_not_found(error):
    if request.path.startswith("/api/"):
        return jsonify({"error": "Resource not found."}), 404
    return render_template("404.html", message="Page not found"), 404


__all__ = ["configure", "setups_blueprint"]
