"""Session - one test run's worth of containers and networks.

The session owns the run's identity (its id label) and its root cancellation
token. It hands out builders, waits on containers and, at the end, reclaims
everything carrying its id.

Lifecycle: CREATED -> ACTIVE -> CLEANING -> CLOSED.
``cleanup()`` is meant to run once, from a guaranteed-release block such as
``open_session()``; callers must not run it concurrently with itself.
"""

from __future__ import annotations

import asyncio
import sys
import uuid
from contextlib import asynccontextmanager
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, TextIO

import structlog

from dockyard import dump
from dockyard.cancellation import CancelToken
from dockyard.cleaner import Cleaner
from dockyard.config import Settings, get_settings
from dockyard.container import Container, ContainerBuilder
from dockyard.drivers.base import Driver
from dockyard.drivers.docker import DockerDriver
from dockyard.errors import DockyardError, EngineError, EngineUnavailableError, SessionClosedError, WaitTimeoutError
from dockyard.labels import LabelFilter, session_labels
from dockyard.network import NetworkBuilder, NetworkConfig
from dockyard.waiter import FADED_AWAY, HEALTHY, Waiter

logger = structlog.get_logger()


class SessionState(str, Enum):
    CREATED = "created"
    ACTIVE = "active"
    CLEANING = "cleaning"
    CLOSED = "closed"


def new_session_id() -> str:
    """Random id, unique across concurrently running processes."""
    return uuid.uuid4().hex[:16]


class Session:
    """Facade over driver, waiter and cleaner for one test run."""

    def __init__(
        self,
        driver: Driver,
        settings: Settings | None = None,
        *,
        session_id: str | None = None,
        owns_driver: bool = False,
        polling_interval: float | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self.id = session_id or new_session_id()
        self.labels = session_labels(self.id)
        # Shared handle; only closed here when this session created it
        self.driver = driver
        self._owns_driver = owns_driver
        self.token = CancelToken()

        if polling_interval is None:
            polling_interval = self._settings.wait.polling_interval
        self.waiter = Waiter(driver, polling_interval=polling_interval)

        self._log_dir = Path(self._settings.log_dir) if self._settings.log_dir else None
        self._state = SessionState.CREATED
        self._log = logger.bind(session_id=self.id)

    @classmethod
    async def create(cls, settings: Settings | None = None, driver: Driver | None = None) -> "Session":
        """Create a session after making sure the engine answers.

        Raises:
            EngineUnavailableError: If the engine cannot be reached
        """
        settings = settings or get_settings()
        owns_driver = driver is None
        if driver is None:
            driver = DockerDriver(url=settings.docker.url)

        try:
            await driver.ping()
        except EngineError as e:
            if owns_driver:
                await driver.close()
            if isinstance(e, EngineUnavailableError):
                raise
            raise EngineUnavailableError(e.message, **e.details) from e

        session = cls(driver, settings, owns_driver=owns_driver)
        session._state = SessionState.ACTIVE
        session._log.info("session.created")
        return session

    async def __aenter__(self) -> "Session":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.cleanup()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def log_dir(self) -> Path | None:
        return self._log_dir

    def ensure_open(self) -> None:
        """Refuse new resources once cleanup has begun."""
        if self._state in (SessionState.CLEANING, SessionState.CLOSED):
            raise SessionClosedError(session_id=self.id, state=self._state.value)

    def cancel(self) -> None:
        """Cancel the root token and every wait or call derived from it."""
        if self.token.cancel_requested:
            return
        self._log.info("session.cancel")
        self.token.cancel()

    # Builders

    def new_container_builder(self) -> ContainerBuilder:
        return ContainerBuilder(self)

    def create_basic_network(self, name: str) -> NetworkBuilder:
        """Bridge network with engine-assigned addressing."""
        return NetworkBuilder(self, NetworkConfig(name=name, labels=dict(self.labels)))

    def create_simple_network(self, name: str, subnet: str, ip_range: str) -> NetworkBuilder:
        """Bridge network with the given subnet and IP range."""
        return NetworkBuilder(
            self,
            NetworkConfig(name=name, subnet=subnet, ip_range=ip_range, labels=dict(self.labels)),
        )

    # Running containers

    async def start_containers(self, *containers: Container) -> None:
        """Start all containers concurrently.

        If several fail, only the last error encountered is raised.
        """
        last_error: DockyardError | None = None

        async def start(container: Container) -> None:
            nonlocal last_error
            try:
                await container.start()
            except DockyardError as e:
                self._log.warning("session.start_failed", container=container.name, error=str(e))
                last_error = e

        await asyncio.gather(*(start(c) for c in containers))
        if last_error is not None:
            raise last_error

    async def wait_for_container_to_exit(self, container: Container, timeout: float | None = None) -> bool:
        """Wait until the container has stopped, killing it on timeout.

        Returns:
            True if it exited on its own, False if it had to be killed
        """
        if timeout is None:
            timeout = self._settings.wait.exit_timeout
        token = self.token.child(timeout=timeout)
        if await self.waiter.wait(FADED_AWAY, container.id, token):
            return True

        self._log.warning("session.exit_timeout", container=container.name, timeout=timeout)
        try:
            await self.driver.kill(container.id)
        except Exception as e:
            self._log.error("session.kill_failed", container=container.name, error=str(e))
        return False

    async def wait_for_container_to_be_healthy(self, container: Container, timeout: float | None = None) -> None:
        """Wait until the container's health check reports healthy.

        Raises:
            WaitTimeoutError: If it is not healthy before the timeout
        """
        if timeout is None:
            timeout = self._settings.wait.health_timeout
        token = self.token.child(timeout=timeout)
        if not await self.waiter.wait(HEALTHY, container.id, token):
            raise WaitTimeoutError(
                "timeout - container is not healthy",
                container_id=container.id,
                name=container.name,
            )

    async def wait_for_log(self, container: Container, search: str, timeout: float | None = None) -> None:
        """Wait until the container prints a line containing ``search``."""
        if timeout is None:
            timeout = self._settings.wait.exit_timeout
        await self.waiter.wait_for_log(container.id, search, self.token.child(timeout=timeout))

    # Diagnostics

    def set_log_dir(self, log_dir: str | Path) -> None:
        """Set (and create) the directory for inspect and log dumps."""
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        self._log_dir = path

    async def dump_inspect(self, *containers: Container) -> list[Path]:
        if self._log_dir is None:
            self._log.warning("session.dump.no_log_dir")
            return []
        paths = [await dump.dump_inspect(self.driver, c, self._log_dir) for c in containers]
        return [p for p in paths if p is not None]

    async def dump_container_logs(self, *containers: Container) -> list[Path]:
        if self._log_dir is None:
            self._log.warning("session.dump.no_log_dir")
            return []
        paths = [await dump.dump_container_log(self.driver, c, self._log_dir) for c in containers]
        return [p for p in paths if p is not None]

    async def write_container_logs(self, *containers: Container, stream: TextIO | None = None) -> None:
        for container in containers:
            await dump.write_container_log(self.driver, container, stream or sys.stdout)

    # Cleanup

    def _cleaner(self) -> Cleaner:
        return Cleaner(
            self.driver,
            self.waiter,
            self.token,
            stop_timeout=self._settings.cleanup.stop_timeout,
            fade_timeout=self._settings.cleanup.fade_timeout,
        )

    async def cleanup(self) -> dict[str, int]:
        """Stop and remove this session's containers, then its networks."""
        if self._state in (SessionState.CLEANING, SessionState.CLOSED):
            self._log.warning("session.cleanup.skipped", state=self._state.value)
            return {}

        self._state = SessionState.CLEANING
        self._log.info("session.cleanup.start")
        try:
            results = await self._cleaner().run(LabelFilter.for_session(self.id))
        finally:
            self._state = SessionState.CLOSED
            if self._owns_driver:
                await self.driver.close()

        self._log.info("session.cleanup.complete", **results)
        return results

    async def sweep_remains(self) -> dict[str, int]:
        """Reclaim everything dockyard ever created, from any session."""
        self._log.info("session.sweep_remains")
        return await self._cleaner().run(LabelFilter.managed())


async def sweep_remains(driver: Driver, settings: Settings | None = None) -> dict[str, int]:
    """Reclaim resources left behind by crashed runs of any session."""
    settings = settings or get_settings()
    cleaner = Cleaner(
        driver,
        Waiter(driver, polling_interval=settings.wait.polling_interval),
        CancelToken(),
        stop_timeout=settings.cleanup.stop_timeout,
        fade_timeout=settings.cleanup.fade_timeout,
    )
    return await cleaner.run(LabelFilter.managed())


@asynccontextmanager
async def open_session(settings: Settings | None = None, driver: Driver | None = None) -> AsyncIterator[Session]:
    """Create a session and clean it up on every exit path."""
    session = await Session.create(settings=settings, driver=driver)
    try:
        yield session
    finally:
        await session.cleanup()
