"""Test configuration and fixtures."""

import pytest

from dockyard.config import Settings
from dockyard.session import Session
from tests.fakes import FakeDriver


@pytest.fixture
def test_settings() -> Settings:
    """Settings with fast polling and short cleanup bounds."""
    return Settings(
        wait={"polling_interval": 0.01, "exit_timeout": 1.0, "health_timeout": 1.0},
        cleanup={"stop_timeout": 1, "fade_timeout": 0.5},
    )


@pytest.fixture
def driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture
async def session(driver: FakeDriver, test_settings: Settings) -> Session:
    return await Session.create(settings=test_settings, driver=driver)
