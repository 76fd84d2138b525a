"""pytest fixtures for tests that need real containers.

Enable with ``pytest_plugins = ["dockyard.pytest_plugin"]`` in a conftest.
"""

from __future__ import annotations

import pytest
import pytest_asyncio

from dockyard.config import Settings, get_settings
from dockyard.log import configure_logging
from dockyard.session import Session


@pytest.fixture(scope="session")
def dockyard_settings() -> Settings:
    settings = get_settings()
    configure_logging(settings.logging)
    return settings


@pytest_asyncio.fixture
async def dockyard_session(dockyard_settings: Settings):
    """A session whose resources are reclaimed when the test ends."""
    session = await Session.create(settings=dockyard_settings)
    try:
        yield session
    finally:
        await session.cleanup()
