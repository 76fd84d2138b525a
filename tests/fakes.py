"""In-memory engine used by unit tests."""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

from dockyard.drivers.base import ContainerInspect, ContainerSummary, Driver, NetworkSummary
from dockyard.errors import EngineError, EngineUnavailableError, NotFoundError
from dockyard.labels import LabelFilter


@dataclass
class FakeContainer:
    id: str
    name: str
    labels: dict[str, str] = field(default_factory=dict)
    running: bool = False
    health_status: str | None = None
    exit_code: int = 0
    output: list[str] = field(default_factory=list)
    config: dict[str, Any] = field(default_factory=dict)
    # Containers that ignore stop and keep running
    stubborn: bool = False


class FakeDriver(Driver):
    """Driver double with per-call latency, scripted failures and a call journal."""

    def __init__(self, *, latency: float = 0.0) -> None:
        self.latency = latency
        self.containers: dict[str, FakeContainer] = {}
        self.networks: dict[str, NetworkSummary] = {}

        # (operation, target) -> exception; target "*" matches every target
        self.failures: dict[tuple[str, str], Exception] = {}
        # (operation, target) -> extra latency
        self.delays: dict[tuple[str, str], float] = {}
        self.ping_error: Exception | None = None

        # ("begin" | "end", operation, target) in the order they happened
        self.events: list[tuple[str, str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False
        self._ids = itertools.count(1)

    # Test helpers

    def add_container(
        self,
        name: str,
        labels: dict[str, str] | None = None,
        *,
        running: bool = True,
        health_status: str | None = None,
        stubborn: bool = False,
    ) -> str:
        container_id = f"fake-container-{next(self._ids)}"
        self.containers[container_id] = FakeContainer(
            id=container_id,
            name=name,
            labels=dict(labels or {}),
            running=running,
            health_status=health_status,
            stubborn=stubborn,
        )
        return container_id

    def add_network(self, name: str, labels: dict[str, str] | None = None) -> str:
        network_id = f"fake-network-{next(self._ids)}"
        self.networks[network_id] = NetworkSummary(id=network_id, name=name, labels=dict(labels or {}))
        return network_id

    def fail(self, operation: str, target: str = "*", error: Exception | None = None) -> None:
        self.failures[(operation, target)] = error or EngineError("boom", operation=operation)

    def calls(self, operation: str) -> list[str]:
        """Targets of every call to ``operation``, in call order."""
        return [target for kind, op, target in self.events if kind == "begin" and op == operation]

    def index_of(self, kind: str, operation: str, target: str) -> int:
        return self.events.index((kind, operation, target))

    async def _call(self, operation: str, target: str = "") -> None:
        self.events.append(("begin", operation, target))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            delay = self.latency + self.delays.get((operation, target), 0.0)
            if delay:
                await asyncio.sleep(delay)
            error = self.failures.get((operation, target)) or self.failures.get((operation, "*"))
            if error is not None:
                raise error
        finally:
            self.in_flight -= 1
            self.events.append(("end", operation, target))

    def _get(self, container_id: str) -> FakeContainer:
        container = self.containers.get(container_id)
        if container is None:
            raise NotFoundError(container_id=container_id)
        return container

    # Driver interface

    async def ping(self) -> None:
        await self._call("ping")
        if self.ping_error is not None:
            raise self.ping_error

    async def list_containers(self, label_filter: LabelFilter) -> list[ContainerSummary]:
        await self._call("list_containers")
        return [
            ContainerSummary(
                id=c.id,
                name=c.name,
                labels=dict(c.labels),
                state="running" if c.running else "exited",
            )
            for c in list(self.containers.values())
            if label_filter.matches(c.labels, status="running" if c.running else "exited", name=c.name)
        ]

    async def list_networks(self, label_filter: LabelFilter) -> list[NetworkSummary]:
        await self._call("list_networks")
        return [n for n in list(self.networks.values()) if label_filter.matches(n.labels, name=n.name)]

    async def create_container(self, config: dict[str, Any], name: str | None = None) -> str:
        await self._call("create_container", name or "")
        container_id = self.add_container(name or "", config.get("Labels"), running=False)
        self.containers[container_id].config = config
        return container_id

    async def start(self, container_id: str) -> None:
        await self._call("start", container_id)
        self._get(container_id).running = True

    async def stop(self, container_id: str, timeout: int) -> None:
        await self._call("stop", container_id)
        container = self._get(container_id)
        if not container.stubborn:
            container.running = False

    async def kill(self, container_id: str, signal: str = "SIGKILL") -> None:
        await self._call("kill", container_id)
        self._get(container_id).running = False

    async def remove(self, container_id: str, *, force: bool = True, volumes: bool = True) -> None:
        await self._call("remove", container_id)
        container = self._get(container_id)
        if container.running and not force:
            raise EngineError("container is running", status=409, container_id=container_id)
        del self.containers[container_id]

    async def inspect(self, container_id: str) -> ContainerInspect:
        await self._call("inspect", container_id)
        container = self._get(container_id)
        return ContainerInspect(
            id=container.id,
            name=container.name,
            status="running" if container.running else "exited",
            running=container.running,
            health_status=container.health_status,
            exit_code=None if container.running else container.exit_code,
            raw={"Id": container.id, "Name": f"/{container.name}", "Config": container.config},
        )

    async def logs(self, container_id: str) -> str:
        await self._call("logs", container_id)
        return "".join(self._get(container_id).output)

    async def follow_logs(self, container_id: str) -> AsyncIterator[str]:
        await self._call("follow_logs", container_id)
        container = self._get(container_id)
        for line in container.output:
            yield line
        # A running container keeps the stream open
        while container.running:
            await asyncio.sleep(0.01)

    async def create_network(self, config: dict[str, Any]) -> str:
        await self._call("create_network", config["Name"])
        return self.add_network(config["Name"], config.get("Labels"))

    async def remove_network(self, network_id: str) -> None:
        await self._call("remove_network", network_id)
        if network_id not in self.networks:
            raise NotFoundError(network_id=network_id)
        del self.networks[network_id]

    async def close(self) -> None:
        self.closed = True


class UnreachableDriver(FakeDriver):
    def __init__(self) -> None:
        super().__init__()
        self.ping_error = EngineUnavailableError("connection refused")
