"""Fetch and normalize the capabilities a server advertises."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Protocol, TypeVar

from .errors import CapabilityFetchError, describe_error
from .schema import (
    CapabilitySnapshot,
    PromptArgument,
    PromptDescriptor,
    ResourceDescriptor,
    ToolDescriptor,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CapabilitySource(Protocol):
    async def list_tools(self) -> Any: ...

    async def list_prompts(self) -> Any: ...

    async def list_resources(self) -> Any: ...


def tool_from_mcp(tool: Any) -> ToolDescriptor:
    schema = getattr(tool, "inputSchema", None)
    return ToolDescriptor(
        name=tool.name,
        description=getattr(tool, "description", None),
        input_schema=dict(schema) if schema is not None else None,
    )


def prompt_from_mcp(prompt: Any) -> PromptDescriptor:
    arguments = getattr(prompt, "arguments", None)
    return PromptDescriptor(
        name=prompt.name,
        description=getattr(prompt, "description", None),
        arguments=(
            [
                PromptArgument(
                    name=argument.name,
                    description=getattr(argument, "description", None),
                    required=getattr(argument, "required", None),
                )
                for argument in arguments
            ]
            if arguments is not None
            else None
        ),
    )


def resource_from_mcp(resource: Any) -> ResourceDescriptor:
    return ResourceDescriptor(
        uri=str(resource.uri),
        name=resource.name,
        description=getattr(resource, "description", None),
        mime_type=getattr(resource, "mimeType", None),
    )


class CapabilityFetcher:
    """Lists tools, prompts and resources independently of each other.

    A kind that fails to list (for example a server without prompt support)
    comes back empty; the fetch as a whole still succeeds.
    """

    async def fetch(self, source: CapabilitySource, *, server_id: str = "unknown") -> CapabilitySnapshot:
        tools, prompts, resources = await asyncio.gather(
            self._fetch_kind(
                "tools",
                server_id,
                source.list_tools,
                lambda result: [tool_from_mcp(tool) for tool in result.tools],
            ),
            self._fetch_kind(
                "prompts",
                server_id,
                source.list_prompts,
                lambda result: [prompt_from_mcp(prompt) for prompt in result.prompts],
            ),
            self._fetch_kind(
                "resources",
                server_id,
                source.list_resources,
                lambda result: [resource_from_mcp(item) for item in result.resources],
            ),
        )
        return CapabilitySnapshot(tools=tools, prompts=prompts, resources=resources)

    async def _fetch_kind(
        self,
        kind: str,
        server_id: str,
        lister: Callable[[], Awaitable[Any]],
        convert: Callable[[Any], list[T]],
    ) -> list[T]:
        try:
            return convert(await lister())
        except Exception as exc:
            error = CapabilityFetchError(
                f"failed to list {kind}: {describe_error(exc)}",
                details={"server_id": server_id, "kind": kind},
            )
            logger.warning(
                "capability fetch degraded server_id=%s kind=%s error=%s",
                server_id,
                kind,
                error.message,
                extra={"run_id": "system"},
            )
            return []
