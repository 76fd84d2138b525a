"""Driver layer - container engine abstraction."""

from dockyard.drivers.base import (
    ContainerInspect,
    ContainerSummary,
    Driver,
    NetworkSummary,
)
from dockyard.drivers.docker import DockerDriver

__all__ = [
    "ContainerInspect",
    "ContainerSummary",
    "DockerDriver",
    "Driver",
    "NetworkSummary",
]
