"""Pytest configuration and fixtures."""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from shortlinks.api.deps import limiter
from shortlinks.config import Settings
from shortlinks.core.resolver import ResolutionEngine
from shortlinks.core.security import PasswordHasher, create_access_token
from shortlinks.core.shortener import CodeGenerator
from shortlinks.core.store import LinkStore
from shortlinks.database import create_db_engine, create_session_factory, init_models, utcnow
from shortlinks.main import create_app
from shortlinks.models import Link
from shortlinks.services.links import LinkService


class FakeClock:
    """Controllable replacement for utcnow"""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a fresh SQLite file."""
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite:///{tmp_path / 'shortlinks.db'}",
        BASE_URL="https://sho.rt",
        BCRYPT_ROUNDS=4,
        STORE_RETRY_BASE_DELAY=0.0,
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def db_engine(settings):
    engine = create_db_engine(settings.DATABASE_URL)
    init_models(engine)

    yield engine

    engine.dispose()


@pytest.fixture
def store(db_engine):
    return LinkStore(create_session_factory(db_engine))


@pytest.fixture
def hasher():
    return PasswordHasher(rounds=4)


@pytest.fixture
def clock():
    return FakeClock(utcnow())


@pytest.fixture
def generator(store):
    return CodeGenerator(store, length=6)


@pytest.fixture
def service(store, generator, hasher, clock):
    return LinkService(store, generator, hasher, clock=clock)


@pytest.fixture
def resolver(store, hasher, clock):
    return ResolutionEngine(store, verify_password=hasher.verify, clock=clock)


@pytest.fixture
def make_link():
    """Build an unsaved link; keyword arguments override the defaults."""
    def factory(**overrides):
        now = utcnow()
        values = {
            "short_code": "abc123",
            "domain": "",
            "destination_url": "https://example.com",
            "click_count": 0,
            "unique_clicks_count": 0,
            "is_one_time": False,
            "is_active": True,
            "created_at": now,
            "updated_at": now,
        }
        values.update(overrides)
        return Link(**values)

    return factory


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    """Test client with the application lifespan running."""
    limiter.reset()

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(settings):
    token = create_access_token("alice", settings)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_auth_headers(settings):
    token = create_access_token("bob", settings)
    return {"Authorization": f"Bearer {token}"}
