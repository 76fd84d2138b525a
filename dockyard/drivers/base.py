"""Driver base class - container engine abstraction.

Driver is responsible ONLY for talking to the engine.
It does NOT handle:
- Labeling policy (callers pass complete configs)
- Retries (every call is attempted exactly once)
- Waiting for state transitions (see dockyard.waiter)

Every failing call raises ``EngineError``; a missing resource raises
``NotFoundError``. Drivers must tolerate concurrent calls from many tasks.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

from dockyard.labels import LabelFilter


@dataclass
class ContainerSummary:
    """Container as reported by a listing."""

    id: str
    name: str
    labels: dict[str, str] = field(default_factory=dict)
    state: str = "unknown"


@dataclass
class NetworkSummary:
    """Network as reported by a listing."""

    id: str
    name: str
    labels: dict[str, str] = field(default_factory=dict)


@dataclass
class ContainerInspect:
    """Inspection snapshot of one container."""

    id: str
    name: str
    status: str
    running: bool
    # None when the container has no health check configured
    health_status: str | None = None
    exit_code: int | None = None
    raw: dict[str, Any] = field(default_factory=dict)


class Driver(ABC):
    """Abstract driver interface for the container engine."""

    @abstractmethod
    async def ping(self) -> None:
        """Check the engine is reachable.

        Raises:
            EngineUnavailableError: If the engine cannot be reached
        """
        ...

    @abstractmethod
    async def list_containers(self, label_filter: LabelFilter) -> list[ContainerSummary]:
        """List containers (any status unless the filter says otherwise)."""
        ...

    @abstractmethod
    async def list_networks(self, label_filter: LabelFilter) -> list[NetworkSummary]:
        """List networks matching the filter."""
        ...

    @abstractmethod
    async def create_container(self, config: dict[str, Any], name: str | None = None) -> str:
        """Create a container without starting it.

        Args:
            config: Docker API container create payload
            name: Container name

        Returns:
            Container ID
        """
        ...

    @abstractmethod
    async def start(self, container_id: str) -> None:
        """Start a created container."""
        ...

    @abstractmethod
    async def stop(self, container_id: str, timeout: int) -> None:
        """Stop a running container.

        Args:
            container_id: Container ID
            timeout: Seconds to wait before the engine kills the container
        """
        ...

    @abstractmethod
    async def kill(self, container_id: str, signal: str = "SIGKILL") -> None:
        """Send a signal to the container's main process."""
        ...

    @abstractmethod
    async def remove(self, container_id: str, *, force: bool = True, volumes: bool = True) -> None:
        """Remove a container.

        Args:
            container_id: Container ID
            force: Kill the container first if it is running
            volumes: Remove anonymous volumes along with it
        """
        ...

    @abstractmethod
    async def inspect(self, container_id: str) -> ContainerInspect:
        """Inspect a container.

        Raises:
            NotFoundError: If the engine does not know the container
        """
        ...

    @abstractmethod
    async def logs(self, container_id: str) -> str:
        """Return the demultiplexed stdout/stderr output so far."""
        ...

    @abstractmethod
    def follow_logs(self, container_id: str) -> AsyncIterator[str]:
        """Stream the demultiplexed output until the container stops."""
        ...

    @abstractmethod
    async def create_network(self, config: dict[str, Any]) -> str:
        """Create a network.

        Args:
            config: Docker API network create payload (including Name)

        Returns:
            Network ID
        """
        ...

    @abstractmethod
    async def remove_network(self, network_id: str) -> None:
        """Remove a network."""
        ...

    async def close(self) -> None:
        """Release the engine connection."""
        return None
