"""Network builder and network handle."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import BaseModel, Field

from dockyard.errors import EngineError, SetupError
from dockyard.labels import SESSION_LABEL, LabelFilter

if TYPE_CHECKING:
    from dockyard.session import Session

logger = structlog.get_logger()


class NetworkConfig(BaseModel):
    """Everything needed to create one bridge network."""

    name: str
    driver: str = "bridge"
    attachable: bool = True
    check_duplicate: bool = True
    subnet: str | None = None
    ip_range: str | None = None
    labels: dict[str, str] = Field(default_factory=dict)

    def to_docker(self) -> dict[str, Any]:
        """Render as a Docker API network create payload."""
        ipam_config: list[dict[str, str]] = []
        if self.subnet:
            entry = {"Subnet": self.subnet}
            if self.ip_range:
                entry["IPRange"] = self.ip_range
            ipam_config.append(entry)

        return {
            "Name": self.name,
            "CheckDuplicate": self.check_duplicate,
            "Attachable": self.attachable,
            "Driver": self.driver,
            "IPAM": {"Driver": "default", "Config": ipam_config},
            "Labels": dict(self.labels),
        }


@dataclass(frozen=True)
class Network:
    """Handle on a network created by a session."""

    id: str
    name: str


class NetworkBuilder:
    """Creates a labeled network for a session."""

    def __init__(self, session: "Session", config: NetworkConfig) -> None:
        self._session = session
        self.config = config
        self._log = logger.bind(session_id=session.id, network=config.name)

    async def create(self) -> Network:
        """Create the network after clearing leftovers with the same name.

        Raises:
            SetupError: If existing networks cannot be listed
        """
        self._session.ensure_open()
        await self._release_name()

        network_id = await self._session.token.run(
            self._session.driver.create_network(self.config.to_docker())
        )
        self._log.info("network.created", network_id=network_id)
        return Network(id=network_id, name=self.config.name)

    async def _release_name(self) -> None:
        driver = self._session.driver
        try:
            existing = await self._session.token.run(
                driver.list_networks(LabelFilter.managed().with_name(self.config.name))
            )
        except EngineError as e:
            self._log.error("network.list_failed", error=str(e))
            raise SetupError(
                "Cannot list existing networks before creating a new one",
                network=self.config.name,
            ) from e

        # The engine's name filter matches substrings
        for network in existing:
            if network.name != self.config.name:
                continue
            try:
                await driver.remove_network(network.id)
                self._log.info(
                    "network.stale_removed",
                    network_id=network.id,
                    owner_session_id=network.labels.get(SESSION_LABEL),
                )
            except Exception as e:
                self._log.warning("network.stale_remove_failed", network_id=network.id, error=str(e))
