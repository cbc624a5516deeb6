"""Pytest fixtures shared across the test suite."""

import pytest

from db import utils as db_utils
from setups.catalog import Category
from setups.browser import SetupBrowser
from setups.name_cache import NameResolutionCache, SqlNameCacheStorage
from tests.app_helpers import FakeApi


@pytest.fixture
def fake_api():
    return FakeApi()


@pytest.fixture
def engine(tmp_path):
    engine_wrapper = db_utils.build_engine_from_dsn(f"sqlite:///{tmp_path / 'name_cache.db'}")
    yield engine_wrapper
    engine_wrapper.dispose()


@pytest.fixture
def cache_storage(engine):
    storage = SqlNameCacheStorage(engine)
    storage.ensure_table()
    return storage


@pytest.fixture
def name_cache(cache_storage):
    return NameResolutionCache(cache_storage)


@pytest.fixture
def iracing():
    return Category(1, "iRacing", "iRacing")


@pytest.fixture
def acc():
    return Category(2, "Assetto Corsa Competizione", "acc")


@pytest.fixture
def make_browser(fake_api, name_cache):
    def _make(category, **kwargs):
        return SetupBrowser(category, fake_api, name_cache, **kwargs)

    return _make


@pytest.fixture
def app(fake_api, engine):
    from web.app_factory import create_app

    flask_app = create_app({'TESTING': True}, api_client=fake_api, engine=engine)
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()
