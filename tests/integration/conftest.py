"""Integration test configuration.

Shared fixtures for tests requiring a live memcached.
All integration tests are marked with ``@pytest.mark.integration``.
Run them with: ``INTEGRATION=1 pytest tests/integration/ -m integration``
"""

import os

import pytest

from memguard.core.config import Settings
from memguard.facade import CacheFacade
from memguard.models.options import PoolOptions

# ── Auto-skip when INTEGRATION env not set ──────────────────────────────────


def pytest_collection_modifyitems(config, items):
    """Auto-skip integration tests when INTEGRATION env var is not set."""
    if os.environ.get("INTEGRATION", "").lower() in ("1", "true", "yes"):
        return
    skip_marker = pytest.mark.skip(reason="Set INTEGRATION=1 to run integration tests against memcached")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_marker)


# ── Fixtures ────────────────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def server_location() -> str:
    """``host:port`` of the memcached under test."""
    return os.environ.get("MEMGUARD_SERVER_LOCATION", "127.0.0.1:11211")


@pytest.fixture
def settings(server_location) -> Settings:
    return Settings(SERVER_LOCATION=server_location, POOL_MAX=4, DEFAULT_TIMEOUT_SECONDS=2.0)


@pytest.fixture
async def cache(settings):
    """Real facade on the live server; flushed before and after each test."""
    facade = CacheFacade.from_settings(settings)
    await facade.start()
    await facade.flush()
    yield facade
    await facade.flush()
    await facade.close()


@pytest.fixture
async def single_connection_cache(server_location):
    facade = CacheFacade(server_location, pool=PoolOptions(max=1))
    yield facade
    await facade.close()
