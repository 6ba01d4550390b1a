"""Bridge between registry capabilities and provider tool-calling conventions."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from .errors import ToolExecutionError, describe_error
from .registry import ConnectionRegistry
from .schema import QUALIFIED_SEPARATOR, ConnectionStatus, ToolCallResponse

if TYPE_CHECKING:
    from ..providers.base import Provider

logger = logging.getLogger(__name__)

TOOL_ERROR_PREFIX = "Error executing tool: "


def qualify_tool_name(server_id: str, tool_name: str) -> str:
    """Build the flat identifier used in a provider's tool namespace."""
    return f"{server_id}{QUALIFIED_SEPARATOR}{tool_name}"


def split_tool_name(qualified: str) -> tuple[str, str]:
    """Split on the first separator; everything after it is the tool name."""
    server_id, separator, tool_name = qualified.partition(QUALIFIED_SEPARATOR)
    if not separator or not server_id or not tool_name:
        raise ToolExecutionError(f"Invalid tool ID format: {qualified}")
    return server_id, tool_name


def normalize_input_schema(schema: Mapping[str, Any] | None) -> dict[str, Any]:
    """Return an object schema whose ``properties`` is a mapping and ``required`` a list."""
    normalized = dict(schema or {})
    properties = normalized.get("properties")
    required = normalized.get("required")
    normalized["type"] = "object"
    normalized["properties"] = dict(properties) if isinstance(properties, Mapping) else {}
    normalized["required"] = (
        [str(item) for item in required] if isinstance(required, (list, tuple)) else []
    )
    return normalized


@dataclass(frozen=True)
class ToolDeclaration:
    """Provider-agnostic description of one callable tool."""

    name: str
    description: str
    input_schema: dict[str, Any] = field(default_factory=dict)
    server_id: str = ""
    tool_name: str = ""


def flatten_tool_content(response: ToolCallResponse) -> str:
    """Collapse content parts into one text blob; non-text parts become JSON."""
    parts: list[str] = []
    for item in response.content:
        if item.get("type") == "text":
            parts.append(str(item.get("text") or ""))
        else:
            parts.append(json.dumps(item, separators=(",", ":"), sort_keys=True))
    return "\n".join(parts)


class ToolBridge:
    """Declares registry tools to providers and routes tool calls back."""

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    def tool_declarations(self, connected_ids: Iterable[str]) -> list[ToolDeclaration]:
        declarations: list[ToolDeclaration] = []
        for server_id in connected_ids:
            state = self.registry.get_state(server_id)
            if state is None or state.status is not ConnectionStatus.CONNECTED:
                continue
            for tool in state.tools or []:
                declarations.append(
                    ToolDeclaration(
                        name=qualify_tool_name(state.config.id, tool.name),
                        description=tool.description or f"Tool from {state.config.name}",
                        input_schema=normalize_input_schema(tool.input_schema),
                        server_id=state.config.id,
                        tool_name=tool.name,
                    )
                )
        return declarations

    def to_provider_tools(self, provider: "Provider", connected_ids: Iterable[str]) -> list[dict[str, Any]]:
        """Render declarations for ``connected_ids`` in the provider's native shape."""
        return provider.format_tools(self.tool_declarations(connected_ids))

    async def dispatch(self, qualified_name: str, arguments: Mapping[str, Any] | None) -> str:
        """Execute a tool call and always return text, even when it fails."""
        try:
            server_id, tool_name = split_tool_name(qualified_name)
            response = await self.registry.call_tool(server_id, tool_name, arguments or {})
        except Exception as exc:
            message = describe_error(exc)
            logger.warning(
                "tool dispatch failed tool=%s error=%s",
                qualified_name,
                message,
                extra={"run_id": "system"},
            )
            return f"{TOOL_ERROR_PREFIX}{message}"
        if response.is_error:
            logger.warning(
                "tool reported an error tool=%s",
                qualified_name,
                extra={"run_id": "system"},
            )
        return flatten_tool_content(response)
