"""Cleaner - best-effort reclamation of labeled engine resources.

A full run has three phases, strictly in order:

1. stop every running container and wait until it has faded away
2. remove every container (forced, with volumes)
3. remove every network

Within a phase each resource gets its own task and the phase ends when all of
them have finished. A failing listing skips its phase; a failing resource is
logged and never affects its siblings. Nothing is retried.
"""

from __future__ import annotations

import asyncio

import structlog

from dockyard.cancellation import CancelToken
from dockyard.drivers.base import Driver
from dockyard.labels import LabelFilter
from dockyard.waiter import FADED_AWAY, Waiter

logger = structlog.get_logger()

DEFAULT_STOP_TIMEOUT = 10
DEFAULT_FADE_TIMEOUT = 30.0


class Cleaner:
    """Stops and removes containers and networks selected by a label filter."""

    def __init__(
        self,
        driver: Driver,
        waiter: Waiter,
        token: CancelToken,
        *,
        stop_timeout: int = DEFAULT_STOP_TIMEOUT,
        fade_timeout: float = DEFAULT_FADE_TIMEOUT,
    ) -> None:
        self._driver = driver
        self._waiter = waiter
        self._token = token
        self._stop_timeout = stop_timeout
        self._fade_timeout = fade_timeout
        self._log = logger.bind(component="cleaner")

    async def run(self, label_filter: LabelFilter) -> dict[str, int]:
        """Run all three phases in order.

        Returns:
            Number of stopped containers, removed containers and removed
            networks, keyed by phase
        """
        self._log.info("cleaner.run.start", labels=label_filter.labels)

        results = {
            "stopped": await self.stop_running_containers(label_filter),
            "removed": await self.remove_containers(label_filter),
            "networks": await self.remove_networks(label_filter),
        }

        self._log.info("cleaner.run.complete", **results)
        return results

    async def stop_running_containers(self, label_filter: LabelFilter) -> int:
        """Stop all running containers matching the filter."""
        try:
            containers = await self._driver.list_containers(label_filter.with_status("running"))
        except Exception as e:
            self._log.error("cleaner.stop.list_failed", labels=label_filter.labels, error=str(e))
            return 0

        if not containers:
            return 0

        results = await asyncio.gather(*(self._stop_container(c.id) for c in containers))
        return sum(results)

    async def remove_containers(self, label_filter: LabelFilter) -> int:
        """Force-remove all containers matching the filter, with their volumes."""
        try:
            containers = await self._driver.list_containers(label_filter)
        except Exception as e:
            self._log.error("cleaner.remove.list_failed", labels=label_filter.labels, error=str(e))
            return 0

        if not containers:
            return 0

        results = await asyncio.gather(*(self._remove_container(c.id) for c in containers))
        return sum(results)

    async def remove_networks(self, label_filter: LabelFilter) -> int:
        """Remove all networks matching the filter, one after another."""
        try:
            networks = await self._driver.list_networks(label_filter)
        except Exception as e:
            self._log.error("cleaner.networks.list_failed", labels=label_filter.labels, error=str(e))
            return 0

        removed = 0
        for network in networks:
            try:
                await self._driver.remove_network(network.id)
                removed += 1
            except Exception as e:
                self._log.warning(
                    "cleaner.networks.remove_failed",
                    network_id=network.id,
                    network=network.name,
                    error=str(e),
                )
        return removed

    async def _stop_container(self, container_id: str) -> bool:
        stopped = True
        try:
            await self._driver.stop(container_id, self._stop_timeout)
        except Exception as e:
            stopped = False
            self._log.warning("cleaner.stop.failed", container_id=container_id, error=str(e))

        # The container may already be on its way down even if stop failed
        token = self._token.child(timeout=self._fade_timeout)
        try:
            faded = await self._waiter.wait(FADED_AWAY, container_id, token)
        except Exception as e:
            self._log.warning("cleaner.stop.wait_failed", container_id=container_id, error=str(e))
            return False

        if not faded:
            self._log.warning("cleaner.stop.not_faded", container_id=container_id)
        return stopped and faded

    async def _remove_container(self, container_id: str) -> bool:
        try:
            await self._driver.remove(container_id, force=True, volumes=True)
        except Exception as e:
            self._log.warning("cleaner.remove.failed", container_id=container_id, error=str(e))
            return False
        return True
