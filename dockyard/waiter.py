"""Waiter - polls container state until a condition holds or a deadline passes.

The waiter only observes. Escalation on timeout (e.g. killing a container that
does not exit) is the caller's decision.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable

import structlog

from dockyard.cancellation import CancelToken
from dockyard.drivers.base import ContainerInspect, Driver
from dockyard.errors import (
    EngineError,
    LogStreamClosedError,
    NotFoundError,
    OperationCancelledError,
    WaitTimeoutError,
)

logger = structlog.get_logger()

DEFAULT_POLLING_INTERVAL = 1.0

Predicate = Callable[[ContainerInspect | None, EngineError | None], bool]


@dataclass(frozen=True)
class WaitCondition:
    """A named predicate over (inspection snapshot, inspection error)."""

    name: str
    predicate: Predicate

    def __call__(self, snapshot: ContainerInspect | None, error: EngineError | None) -> bool:
        return self.predicate(snapshot, error)


def _has_faded_away(snapshot: ContainerInspect | None, error: EngineError | None) -> bool:
    if isinstance(error, NotFoundError):
        return True
    return snapshot is not None and not snapshot.running


def _is_healthy(snapshot: ContainerInspect | None, error: EngineError | None) -> bool:
    # No health check configured means never healthy
    return snapshot is not None and snapshot.health_status == "healthy"


FADED_AWAY = WaitCondition("faded_away", _has_faded_away)
HEALTHY = WaitCondition("healthy", _is_healthy)


class Waiter:
    """Polls ``driver.inspect`` once per interval."""

    def __init__(self, driver: Driver, polling_interval: float = DEFAULT_POLLING_INTERVAL) -> None:
        self._driver = driver
        self._polling_interval = polling_interval
        self._log = logger.bind(component="waiter")

    @property
    def polling_interval(self) -> float:
        return self._polling_interval

    async def wait(self, condition: WaitCondition, container_id: str, token: CancelToken) -> bool:
        """Poll until ``condition`` holds.

        Returns:
            True if the condition was met, False if the token was cancelled
            or its deadline passed first
        """
        polls = 0
        while True:
            snapshot: ContainerInspect | None = None
            error: EngineError | None = None
            try:
                snapshot = await self._driver.inspect(container_id)
            except EngineError as e:
                error = e
            polls += 1

            if condition(snapshot, error):
                self._log.debug(
                    "waiter.condition_met",
                    condition=condition.name,
                    container_id=container_id,
                    polls=polls,
                )
                return True

            if token.cancelled:
                self._log.warning(
                    "waiter.timeout",
                    condition=condition.name,
                    container_id=container_id,
                    polls=polls,
                    cancel_requested=token.cancel_requested,
                )
                return False

            await asyncio.sleep(self._polling_interval)

    async def wait_for_log(self, container_id: str, search: str, token: CancelToken) -> None:
        """Follow the container's output until a line contains ``search``.

        Raises:
            LogStreamClosedError: If the stream ends without a match
            WaitTimeoutError: If the token is cancelled or expires first
        """

        async def scan() -> bool:
            async for line in self._driver.follow_logs(container_id):
                if search in line:
                    return True
            return False

        try:
            found = await token.run(scan())
        except OperationCancelledError as e:
            self._log.warning("waiter.log_timeout", container_id=container_id, search=search)
            raise WaitTimeoutError(
                f"Timed out waiting for {search!r} in container log",
                container_id=container_id,
            ) from e

        if not found:
            raise LogStreamClosedError(
                f"Log stream closed without finding {search!r}",
                container_id=container_id,
            )
