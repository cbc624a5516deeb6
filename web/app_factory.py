"""Flask application factory and service client initialization."""
from __future__ import annotations

import os
from typing import Any, Callable, Mapping

from flask import Flask

import config
from catalog_api.client import SetupsApiClient
from db import utils as db_utils
from init import build_default_engine, initialize_storage
from routes import pricing as routes_pricing
from routes import setups as routes_setups
from setups.browser import SetupBrowser
from setups.catalog import Category, CategoryCatalog
from setups.sessions import BrowserRegistry, SessionRegistry


def create_app(
    config_overrides: Mapping[str, Any] | None = None,
    *,
    api_client: Any | None = None,
    engine: db_utils.DatabaseEngine | None = None,
    configure_logging: Callable[[Flask], None] | None = None,
) -> Flask:
    """Return a configured Flask application instance.

    ``api_client`` and ``engine`` default to the configured remote API and
    name-cache database.
    """
    flask_app = Flask(
        "app",
        root_path=os.fspath(config.BASE_DIR),
        template_folder="templates",
    )
    flask_app.secret_key = config.APP_SECRET_KEY
    flask_app.config["SETUPS_PAGE_SIZE"] = config.SETUPS_PAGE_SIZE
    flask_app.config["MAX_BROWSING_SESSIONS"] = config.MAX_VISITOR_SESSIONS
    flask_app.config["MAX_PURCHASE_FLOWS"] = config.MAX_VISITOR_SESSIONS
    if config_overrides:
        flask_app.config.update(config_overrides)

    if configure_logging is not None:
        configure_logging(flask_app)

    client = api_client or SetupsApiClient()
    if engine is None and config.NAME_CACHE_ENABLED:
        engine = build_default_engine()
    name_cache = initialize_storage(engine=engine)
    catalog = CategoryCatalog(client)
    page_size = int(flask_app.config["SETUPS_PAGE_SIZE"])

    def _browser_factory(category: Category) -> SetupBrowser:
        return SetupBrowser(category, client, name_cache, page_size=page_size)

    browsers = BrowserRegistry(
        _browser_factory, max_sessions=int(flask_app.config["MAX_BROWSING_SESSIONS"])
    )
    flows = SessionRegistry(max_sessions=int(flask_app.config["MAX_PURCHASE_FLOWS"]))

    routes_setups.configure({
        'catalog': catalog,
        'browsers': browsers,
        'api_client': client,
    })
    routes_pricing.configure({
        'catalog': catalog,
        'api_client': client,
        'flows': flows,
    })

    flask_app.register_blueprint(routes_setups.setups_blueprint)
    flask_app.register_blueprint(routes_pricing.pricing_blueprint)

    flask_app.extensions["setups"] = {
        'api_client': client,
        'catalog': catalog,
        'browsers': browsers,
        'flows': flows,
        'name_cache': name_cache,
        'engine': engine,
    }
    return flask_app
