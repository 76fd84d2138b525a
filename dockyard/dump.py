"""Dump container inspect data and output into a log directory.

Dumping is diagnostic only: failures are logged and never raised.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

import structlog

from dockyard.drivers.base import Driver

if TYPE_CHECKING:
    from dockyard.container import Container

logger = structlog.get_logger()


async def dump_inspect(driver: Driver, container: "Container", log_dir: Path) -> Path | None:
    """Write ``<log_dir>/<name>.json`` with the container's inspect payload."""
    path = log_dir / f"{container.name}.json"
    try:
        snapshot = await driver.inspect(container.id)
        path.write_text(json.dumps(snapshot.raw, indent=2, default=str))
    except Exception as e:
        logger.warning("dump.inspect_failed", container=container.name, path=str(path), error=str(e))
        return None
    return path


async def dump_container_log(driver: Driver, container: "Container", log_dir: Path) -> Path | None:
    """Write ``<log_dir>/<name>.txt`` with the container's stdout and stderr."""
    path = log_dir / f"{container.name}.txt"
    try:
        output = await driver.logs(container.id)
        path.write_text(output)
    except Exception as e:
        logger.warning("dump.log_failed", container=container.name, path=str(path), error=str(e))
        return None
    return path


async def write_container_log(driver: Driver, container: "Container", stream: TextIO) -> None:
    """Write the container's output to ``stream`` between marker lines."""
    try:
        output = await driver.logs(container.id)
    except Exception as e:
        logger.warning("dump.log_failed", container=container.name, error=str(e))
        return

    stream.write(f"\n------ Container Log '{container.name}':\n")
    stream.write(output)
    stream.write(f"\n------ End of '{container.name}' container log.\n\n")
