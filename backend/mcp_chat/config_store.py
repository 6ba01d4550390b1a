"""Export and import of server config lists as a JSON array."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable

from .mcp.errors import ConfigError
from .mcp.schema import ServerConfig


class ConfigImportError(ConfigError):
    """Raised when an imported document cannot replace the config list."""


def export_configs(configs: Iterable[ServerConfig]) -> str:
    """Serialize ``configs`` as a pretty-printed JSON array."""
    return json.dumps([config.to_wire() for config in configs], indent=2)


def import_configs(text: str) -> list[ServerConfig]:
    """Parse an exported document; the whole import fails on any bad entry."""
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigImportError(f"Failed to parse config: {exc.msg}") from exc
    if not isinstance(payload, list):
        raise ConfigImportError("Invalid config format: expected a JSON array of servers")

    configs: list[ServerConfig] = []
    seen: set[str] = set()
    for index, entry in enumerate(payload):
        try:
            config = ServerConfig.from_payload(entry)
        except ConfigError as exc:
            raise ConfigImportError(
                f"Invalid server at index {index}: {exc.message}",
                details={"index": index},
            ) from exc
        if config.id in seen:
            raise ConfigImportError(
                f"Duplicate server id: {config.id}",
                details={"index": index, "server_id": config.id},
            )
        seen.add(config.id)
        configs.append(config)
    return configs


def load_config_file(path: str | Path) -> list[ServerConfig]:
    return import_configs(Path(path).read_text(encoding="utf-8"))
