"""Docker driver implementation using aiodocker.

Supports:
- Local engine via the default unix socket
- Remote or alternative engines via DOCKER_HOST or an explicit URL
"""

from __future__ import annotations

import asyncio
import json
from contextlib import contextmanager
from typing import Any, AsyncIterator, Iterator

import aiodocker
import aiohttp
import structlog
from aiodocker.exceptions import DockerError
from aiodocker.networks import DockerNetwork

from dockyard.drivers.base import (
    ContainerInspect,
    ContainerSummary,
    Driver,
    NetworkSummary,
)
from dockyard.errors import EngineError, EngineUnavailableError, NotFoundError
from dockyard.labels import LabelFilter

logger = structlog.get_logger()


@contextmanager
def _engine_call(operation: str, **details: Any) -> Iterator[None]:
    """Translate aiodocker/aiohttp failures into dockyard errors."""
    try:
        yield
    except DockerError as e:
        if e.status == 404:
            raise NotFoundError(e.message, operation=operation, **details) from e
        raise EngineError(e.message, status=e.status, operation=operation, **details) from e
    except aiohttp.ClientError as e:
        raise EngineError(str(e), operation=operation, **details) from e
    except asyncio.TimeoutError as e:
        raise EngineError("engine call timed out", operation=operation, **details) from e


class DockerDriver(Driver):
    """Docker driver implementation using aiodocker."""

    def __init__(self, url: str | None = None) -> None:
        self._url = url
        self._log = logger.bind(driver="docker")
        self._client: aiodocker.Docker | None = None

    async def _get_client(self) -> aiodocker.Docker:
        """Get or create the aiodocker client."""
        if self._client is None:
            self._client = aiodocker.Docker(url=self._url)
        return self._client

    async def close(self) -> None:
        """Close the docker client."""
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def ping(self) -> None:
        try:
            client = await self._get_client()
            version = await client.version()
        except (DockerError, aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError) as e:
            self._log.error("docker.ping.failed", url=self._url, error=str(e) or type(e).__name__)
            raise EngineUnavailableError(str(e) or None, url=self._url) from e

        self._log.debug("docker.ping", api_version=version.get("ApiVersion"))

    async def list_containers(self, label_filter: LabelFilter) -> list[ContainerSummary]:
        client = await self._get_client()

        with _engine_call("list_containers"):
            containers = await client.containers.list(
                all=True,
                filters=json.dumps(label_filter.to_docker()),
            )

        summaries = []
        for container in containers:
            names = container["Names"] or []
            summaries.append(
                ContainerSummary(
                    id=container.id,
                    name=names[0].lstrip("/") if names else "",
                    labels=container["Labels"] or {},
                    state=container["State"],
                )
            )
        return summaries

    async def list_networks(self, label_filter: LabelFilter) -> list[NetworkSummary]:
        client = await self._get_client()

        with _engine_call("list_networks"):
            networks = await client.networks.list(filters=label_filter.to_docker())

        return [
            NetworkSummary(
                id=network["Id"],
                name=network["Name"],
                labels=network.get("Labels") or {},
            )
            for network in networks
        ]

    async def create_container(self, config: dict[str, Any], name: str | None = None) -> str:
        client = await self._get_client()
        self._log.info("docker.create", name=name, image=config.get("Image"))

        with _engine_call("create_container", name=name):
            container = await client.containers.create(config=config, name=name)

        self._log.info("docker.created", name=name, container_id=container.id)
        return container.id

    async def start(self, container_id: str) -> None:
        client = await self._get_client()
        self._log.info("docker.start", container_id=container_id)

        with _engine_call("start", container_id=container_id):
            await client.containers.container(container_id).start()

    async def stop(self, container_id: str, timeout: int) -> None:
        client = await self._get_client()
        self._log.info("docker.stop", container_id=container_id, timeout=timeout)

        with _engine_call("stop", container_id=container_id):
            await client.containers.container(container_id).stop(t=timeout)

    async def kill(self, container_id: str, signal: str = "SIGKILL") -> None:
        client = await self._get_client()
        self._log.info("docker.kill", container_id=container_id, signal=signal)

        with _engine_call("kill", container_id=container_id):
            await client.containers.container(container_id).kill(signal=signal)

    async def remove(self, container_id: str, *, force: bool = True, volumes: bool = True) -> None:
        client = await self._get_client()
        self._log.info("docker.remove", container_id=container_id, force=force)

        with _engine_call("remove", container_id=container_id):
            await client.containers.container(container_id).delete(force=force, v=volumes)

    async def inspect(self, container_id: str) -> ContainerInspect:
        client = await self._get_client()

        with _engine_call("inspect", container_id=container_id):
            info = await client.containers.container(container_id).show()

        state = info.get("State") or {}
        # Health is absent unless the container has a health check
        health = state.get("Health") or {}

        return ContainerInspect(
            id=info.get("Id", container_id),
            name=info.get("Name", "").lstrip("/"),
            status=state.get("Status", "unknown"),
            running=bool(state.get("Running", False)),
            health_status=health.get("Status"),
            exit_code=state.get("ExitCode"),
            raw=info,
        )

    async def logs(self, container_id: str) -> str:
        client = await self._get_client()

        with _engine_call("logs", container_id=container_id):
            lines = await client.containers.container(container_id).log(stdout=True, stderr=True)
        return "".join(lines)

    async def follow_logs(self, container_id: str) -> AsyncIterator[str]:
        client = await self._get_client()
        container = client.containers.container(container_id)

        with _engine_call("follow_logs", container_id=container_id):
            async for line in container.log(stdout=True, stderr=True, follow=True):
                yield line

    async def create_network(self, config: dict[str, Any]) -> str:
        client = await self._get_client()
        self._log.info("docker.create_network", name=config.get("Name"))

        with _engine_call("create_network", name=config.get("Name")):
            network = await client.networks.create(config)

        return network.id

    async def remove_network(self, network_id: str) -> None:
        client = await self._get_client()
        self._log.info("docker.remove_network", network_id=network_id)

        with _engine_call("remove_network", network_id=network_id):
            await DockerNetwork(client, network_id).delete()
