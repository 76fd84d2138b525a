"""Integration test fixtures.

These tests talk to a real Docker engine and are skipped unless
DOCKYARD_E2E=1 is set.
"""

import os

import aiodocker
import pytest
import pytest_asyncio

from dockyard.drivers.docker import DockerDriver
from dockyard.pytest_plugin import dockyard_session, dockyard_settings  # noqa: F401

IMAGE = "busybox:latest"


def pytest_collection_modifyitems(config, items):
    if os.environ.get("DOCKYARD_E2E") == "1":
        return
    skip = pytest.mark.skip(reason="set DOCKYARD_E2E=1 to run against a Docker engine")
    for item in items:
        if "integration" in item.nodeid:
            item.add_marker(pytest.mark.e2e)
            item.add_marker(skip)


@pytest_asyncio.fixture
async def image(dockyard_settings) -> str:  # noqa: F811
    """Make sure the test image is present locally."""
    async with aiodocker.Docker(url=dockyard_settings.docker.url) as docker:
        await docker.images.pull(IMAGE)
    return IMAGE


@pytest_asyncio.fixture
async def docker_driver(dockyard_settings):  # noqa: F811
    """A separate driver for looking at what a session left behind."""
    driver = DockerDriver(url=dockyard_settings.docker.url)
    try:
        yield driver
    finally:
        await driver.close()
