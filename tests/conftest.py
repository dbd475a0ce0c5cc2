"""
tests/conftest.py – shared pytest configuration and fixtures.

Integration tests (marked with @pytest.mark.integration) are skipped by
default. Pass --integration to opt in; they run against the database named
by POPUPS_TEST_DATABASE_URL:

    POPUPS_TEST_DATABASE_URL=postgresql://... pytest --integration -v
"""
import pytest

from popups_api.main import app, limiter
from popups_api.models import DebugCounters
from popups_api.services.cache import InMemoryProcessCache
from popups_api.services.durable_store import InMemoryDurableStore
from popups_api.services.repository import CampaignClientRepository, get_repository
from popups_api.services.transients import TransientStore


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--integration",
        action="store_true",
        default=False,
        help="Run integration tests against a real database.",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "integration: needs a real database")


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if not config.getoption("--integration"):
        skip = pytest.mark.skip(reason="Pass --integration to run this test.")
        for item in items:
            if item.get_closest_marker("integration"):
                item.add_marker(skip)


# ── Store fixtures ────────────────────────────────────────────────────────────


@pytest.fixture
def durable() -> InMemoryDurableStore:
    return InMemoryDurableStore()


@pytest.fixture
def cache() -> InMemoryProcessCache:
    return InMemoryProcessCache(group="test-popups")


@pytest.fixture
def transients(cache, durable) -> TransientStore:
    return TransientStore(cache=cache, durable=durable)


@pytest.fixture
def repository(transients) -> CampaignClientRepository:
    return CampaignClientRepository(transients)


@pytest.fixture
def counters() -> DebugCounters:
    return DebugCounters()


# ── App fixtures ──────────────────────────────────────────────────────────────


@pytest.fixture
def api(repository):
    """TestClient wired to the in-memory repository, rate limiting off."""
    from fastapi.testclient import TestClient

    app.dependency_overrides[get_repository] = lambda: repository
    limiter.enabled = False
    limiter.reset()
    with TestClient(app) as c:
        yield c
    limiter.enabled = True
    limiter.reset()
    app.dependency_overrides.clear()


@pytest.fixture
def trusted_headers() -> dict[str, str]:
    """A Referer matching TestClient's default Host header."""
    return {"Referer": "http://testserver/2024/03/some-article/"}
