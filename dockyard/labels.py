"""Resource labels and label filters.

Labels are the contract with the engine: everything dockyard creates is
tagged with the managed marker plus the id of the owning session, and every
cleanup selects resources by these labels only.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Literal

MANAGED_LABEL = "dockyard.managed"
MANAGED_VALUE = "true"
SESSION_LABEL = "dockyard.session_id"

ContainerState = Literal["running", "exited"]


def session_labels(session_id: str) -> dict[str, str]:
    """Labels every resource created by the given session must carry."""
    return {
        MANAGED_LABEL: MANAGED_VALUE,
        SESSION_LABEL: session_id,
    }


@dataclass(frozen=True)
class LabelFilter:
    """Equality predicates on labels, plus optional status and name predicates."""

    labels: dict[str, str] = field(default_factory=dict)
    status: ContainerState | None = None
    name: str | None = None

    @classmethod
    def managed(cls) -> "LabelFilter":
        """Everything dockyard ever created, whatever the session."""
        return cls(labels={MANAGED_LABEL: MANAGED_VALUE})

    @classmethod
    def for_session(cls, session_id: str) -> "LabelFilter":
        """Only the resources of one session."""
        return cls(labels=session_labels(session_id))

    def with_status(self, status: ContainerState) -> "LabelFilter":
        return replace(self, status=status)

    def with_name(self, name: str) -> "LabelFilter":
        return replace(self, name=name)

    def matches(self, labels: dict[str, str], *, status: str | None = None, name: str | None = None) -> bool:
        """Evaluate the filter locally, the way the engine does."""
        for key, value in self.labels.items():
            if labels.get(key) != value:
                return False
        if self.status is not None and status != self.status:
            return False
        if self.name is not None and (name is None or self.name not in name):
            return False
        return True

    def to_docker(self) -> dict[str, list[str]]:
        """Render as a Docker API ``filters`` mapping."""
        filters: dict[str, list[str]] = {
            "label": [f"{key}={value}" for key, value in sorted(self.labels.items())],
        }
        if self.status is not None:
            filters["status"] = [self.status]
        if self.name is not None:
            filters["name"] = [self.name]
        return filters
