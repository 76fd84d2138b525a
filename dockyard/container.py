"""Container builder and container handle.

A ``ContainerBuilder`` accumulates a ``ContainerConfig`` and only touches the
engine on ``build()``. Builders can be branched with ``derive()``: the config
is deep-copied, while the owning session is shared.
"""

from __future__ import annotations

import shlex
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import BaseModel, Field

from dockyard.cancellation import CancelToken
from dockyard.drivers.base import ContainerInspect, Driver
from dockyard.errors import ContainerRunningError

if TYPE_CHECKING:
    from dockyard.network import Network
    from dockyard.session import Session

logger = structlog.get_logger()

_NANOSECONDS = 1_000_000_000


class HealthCheck(BaseModel):
    """Health check run by the engine inside the container."""

    test: list[str]
    interval: float = 0.2  # seconds
    retries: int = 20


class EndpointConfig(BaseModel):
    """Per-network attachment settings."""

    network_id: str | None = None
    links: list[str] = Field(default_factory=list)
    ipv4_address: str | None = None


class ContainerConfig(BaseModel):
    """Everything needed to create one container."""

    image: str | None = None
    cmd: list[str] = Field(default_factory=list)
    env: list[str] = Field(default_factory=list)
    working_dir: str | None = None
    labels: dict[str, str] = Field(default_factory=dict)
    binds: list[str] = Field(default_factory=list)
    dns: list[str] = Field(default_factory=list)
    auto_remove: bool = False
    network_mode: str | None = None
    healthcheck: HealthCheck | None = None
    endpoints: dict[str, EndpointConfig] = Field(default_factory=dict)
    exposed_ports: list[str] = Field(default_factory=list)
    # container port (e.g. "8080/tcp") -> host ports
    port_bindings: dict[str, list[str]] = Field(default_factory=dict)

    def to_docker(self) -> dict[str, Any]:
        """Render as a Docker API container create payload."""
        host_config: dict[str, Any] = {
            "Binds": list(self.binds),
            "Dns": list(self.dns),
            "AutoRemove": self.auto_remove,
        }
        if self.network_mode:
            host_config["NetworkMode"] = self.network_mode
        if self.port_bindings:
            host_config["PortBindings"] = {
                port: [{"HostPort": host_port} for host_port in host_ports]
                for port, host_ports in self.port_bindings.items()
            }

        payload: dict[str, Any] = {
            "Image": self.image,
            "Env": list(self.env),
            "Labels": dict(self.labels),
            "HostConfig": host_config,
        }
        if self.cmd:
            payload["Cmd"] = list(self.cmd)
        if self.working_dir:
            payload["WorkingDir"] = self.working_dir
        if self.exposed_ports:
            payload["ExposedPorts"] = {port: {} for port in self.exposed_ports}
        if self.healthcheck is not None:
            payload["Healthcheck"] = {
                "Test": list(self.healthcheck.test),
                "Interval": int(self.healthcheck.interval * _NANOSECONDS),
                "Retries": self.healthcheck.retries,
            }
        if self.endpoints:
            endpoints: dict[str, Any] = {}
            for network_name, endpoint in self.endpoints.items():
                settings: dict[str, Any] = {}
                if endpoint.network_id:
                    settings["NetworkID"] = endpoint.network_id
                if endpoint.links:
                    settings["Links"] = list(endpoint.links)
                if endpoint.ipv4_address:
                    settings["IPAMConfig"] = {"IPv4Address": endpoint.ipv4_address}
                endpoints[network_name] = settings
            payload["NetworkingConfig"] = {"EndpointsConfig": endpoints}
        return payload


class Container:
    """Handle on a container created by a session."""

    def __init__(self, container_id: str, name: str | None, driver: Driver, token: CancelToken) -> None:
        self.id = container_id
        self.name = name or container_id[:12]
        self._driver = driver
        self._token = token

    def __repr__(self) -> str:
        return f"Container(id={self.id[:12]!r}, name={self.name!r})"

    @property
    def token(self) -> CancelToken:
        return self._token

    async def start(self) -> None:
        await self._token.run(self._driver.start(self.id))

    async def inspect(self) -> ContainerInspect:
        return await self._token.run(self._driver.inspect(self.id))

    async def exit_code(self) -> int:
        """Exit code of a stopped container.

        Raises:
            ContainerRunningError: If the container is still running
        """
        snapshot = await self.inspect()
        if snapshot.running:
            raise ContainerRunningError(container_id=self.id, name=self.name)
        return snapshot.exit_code if snapshot.exit_code is not None else -1

    def cancel(self) -> None:
        """Abandon this container's pending engine calls."""
        self._token.cancel()


class ContainerBuilder:
    """Fluent container configuration bound to a session."""

    def __init__(
        self,
        session: "Session",
        config: ContainerConfig | None = None,
        *,
        container_name: str | None = None,
        original_name: str | None = None,
    ) -> None:
        # Shared with every derived builder
        self._session = session
        # Forked by derive()
        self.config = config or ContainerConfig(labels=dict(session.labels))
        self.container_name = container_name
        self._original_name = original_name

    def derive(self) -> "ContainerBuilder":
        """Branch an independent builder from the current state."""
        return ContainerBuilder(
            self._session,
            self.config.model_copy(deep=True),
            container_name=self.container_name,
            original_name=self._original_name,
        )

    async def build(self) -> Container:
        """Create the container from the builder's current state."""
        self._session.ensure_open()
        token = self._session.token.child()
        container_id = await token.run(
            self._session.driver.create_container(self.config.to_docker(), self.container_name)
        )
        logger.info(
            "container.built",
            session_id=self._session.id,
            container_id=container_id,
            name=self.container_name,
        )
        return Container(container_id, self.container_name, self._session.driver, token)

    def name(self, name: str) -> "ContainerBuilder":
        """Name the container; the session id is appended to keep names unique."""
        self._original_name = name
        self.container_name = f"{name}-{self._session.id}"
        return self

    def use_original_name(self) -> "ContainerBuilder":
        """Drop the session suffix from the container name."""
        self.container_name = self._original_name
        return self

    def image(self, image: str) -> "ContainerBuilder":
        self.config.image = image
        return self

    def cmd(self, cmd: str | list[str]) -> "ContainerBuilder":
        self.config.cmd = shlex.split(cmd) if isinstance(cmd, str) else list(cmd)
        return self

    def env(self, name: str, value: str) -> "ContainerBuilder":
        self.config.env.append(f"{name}={value}")
        return self

    def working_dir(self, path: str) -> "ContainerBuilder":
        self.config.working_dir = path
        return self

    def mount(self, local_path: str, container_path: str) -> "ContainerBuilder":
        """Bind-mount a host directory into the container."""
        self.config.binds.append(f"{local_path}:{container_path}")
        return self

    def dns(self, server_ip: str) -> "ContainerBuilder":
        self.config.dns.append(server_ip)
        return self

    def auto_remove(self, enabled: bool = True) -> "ContainerBuilder":
        self.config.auto_remove = enabled
        return self

    def health_shell_cmd(self, cmd: str, *, interval: float = 0.2, retries: int = 20) -> "ContainerBuilder":
        self.config.healthcheck = HealthCheck(test=["CMD-SHELL", cmd], interval=interval, retries=retries)
        return self

    def connect(self, network: "Network") -> "ContainerBuilder":
        """Attach the container to a network."""
        self.config.network_mode = network.name
        self._endpoint(network).network_id = network.id
        return self

    def link(self, container: Container, alias: str, network: "Network") -> "ContainerBuilder":
        """Make ``container`` reachable as ``alias`` on ``network``."""
        self._endpoint(network).links.append(f"{container.name}:{alias}")
        return self

    def ip_address(self, address: str, network: "Network") -> "ContainerBuilder":
        self._endpoint(network).ipv4_address = address
        return self

    def expose_port(self, port: str) -> "ContainerBuilder":
        """Expose a container port such as ``"8080/tcp"``."""
        if port not in self.config.exposed_ports:
            self.config.exposed_ports.append(port)
        return self

    def bind_port(self, container_port: str, host_port: str) -> "ContainerBuilder":
        """Publish ``container_port`` on ``host_port`` of the engine host."""
        self.config.port_bindings.setdefault(container_port, []).append(host_port)
        return self

    def _endpoint(self, network: "Network") -> EndpointConfig:
        return self.config.endpoints.setdefault(network.name, EndpointConfig())
