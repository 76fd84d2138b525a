"""Dockyard error hierarchy.

Every error carries a human readable ``message`` and a ``details`` dict with
the identifiers that help locate the failing resource.
"""

from __future__ import annotations

from typing import Any


class DockyardError(Exception):
    """Base class for all dockyard errors."""

    code: str = "dockyard_error"
    message: str = "Dockyard error"

    def __init__(self, message: str | None = None, **details: Any) -> None:
        self.message = message or self.message
        self.details: dict[str, Any] = {k: v for k, v in details.items() if v is not None}
        super().__init__(self.message)

    def __str__(self) -> str:
        if not self.details:
            return self.message
        extra = ", ".join(f"{k}={v}" for k, v in self.details.items())
        return f"{self.message} ({extra})"


class EngineError(DockyardError):
    """A call against the container engine failed."""

    code = "engine_error"
    message = "Container engine call failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        status: int | None = None,
        **details: Any,
    ) -> None:
        self.status = status
        super().__init__(message, status=status, **details)


class EngineUnavailableError(EngineError):
    """The container engine cannot be reached. Raised at session creation."""

    code = "engine_unavailable"
    message = "Container engine is not reachable"


class NotFoundError(EngineError):
    """The engine does not know the addressed resource."""

    code = "not_found"
    message = "Resource not found"

    def __init__(self, message: str | None = None, **details: Any) -> None:
        super().__init__(message, status=404, **details)


class SetupError(DockyardError):
    """A prerequisite for safe resource creation could not be established."""

    code = "setup_failed"
    message = "Cannot safely create resources"


class WaitTimeoutError(DockyardError):
    """A container did not reach the awaited condition before the deadline."""

    code = "wait_timeout"
    message = "Timed out waiting for container"


class OperationCancelledError(DockyardError):
    """An engine call was abandoned because its token was cancelled."""

    code = "cancelled"
    message = "Operation cancelled"


class ContainerRunningError(DockyardError):
    """The container is still running, so it has no exit code yet."""

    code = "container_running"
    message = "Container is running, it has no exit code yet"


class LogStreamClosedError(DockyardError):
    """The log stream ended before the searched text showed up."""

    code = "log_stream_closed"
    message = "Log stream closed without finding"


class SessionClosedError(DockyardError):
    """The session is cleaning up or closed and accepts no new resources."""

    code = "session_closed"
    message = "Session is closed"
