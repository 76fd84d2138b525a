"""Ephemeral container environments for functional tests."""

from dockyard.config import Settings, get_settings
from dockyard.container import Container, ContainerBuilder
from dockyard.errors import (
    DockyardError,
    EngineError,
    EngineUnavailableError,
    NotFoundError,
    SetupError,
    WaitTimeoutError,
)
from dockyard.labels import LabelFilter
from dockyard.network import Network, NetworkBuilder
from dockyard.session import Session, SessionState, open_session, sweep_remains
from dockyard.waiter import FADED_AWAY, HEALTHY, WaitCondition, Waiter

__all__ = [
    "FADED_AWAY",
    "HEALTHY",
    "Container",
    "ContainerBuilder",
    "DockyardError",
    "EngineError",
    "EngineUnavailableError",
    "LabelFilter",
    "Network",
    "NetworkBuilder",
    "NotFoundError",
    "Session",
    "SessionState",
    "SetupError",
    "Settings",
    "WaitCondition",
    "WaitTimeoutError",
    "Waiter",
    "get_settings",
    "open_session",
    "sweep_remains",
]
