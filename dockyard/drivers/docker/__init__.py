"""Docker driver."""

from dockyard.drivers.docker.docker import DockerDriver

__all__ = ["DockerDriver"]
