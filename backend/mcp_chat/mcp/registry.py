"""Process-wide registry of MCP server connections and their state snapshots."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping, Protocol

from .capabilities import CapabilityFetcher
from .errors import MCPChatError, NotConnectedError, TransportError, describe_error
from .schema import (
    ConnectionState,
    ConnectionStatus,
    PromptGetResponse,
    ResourceReadResponse,
    ServerConfig,
    ToolCallResponse,
)
from .transports import open_channel

logger = logging.getLogger(__name__)


class ChannelHandle(Protocol):
    """What the registry needs from an open channel."""

    async def list_tools(self) -> Any: ...

    async def list_prompts(self) -> Any: ...

    async def list_resources(self) -> Any: ...

    async def call_tool(self, name: str, arguments: Mapping[str, Any]) -> Any: ...

    async def get_prompt(self, name: str, arguments: Mapping[str, str] | None = None) -> Any: ...

    async def read_resource(self, uri: str) -> Any: ...

    async def close(self) -> None: ...


ChannelOpener = Callable[[ServerConfig], Awaitable[ChannelHandle]]


def _retrieve_exception(task: asyncio.Task[Any]) -> None:
    if not task.cancelled():
        task.exception()


class ConnectionRegistry:
    """Owns every live channel and the last known state of each server.

    One instance is built by the composition root and shared by all request
    handlers. All table mutations are whole-value replacements keyed by
    server id, so concurrent request flows never observe a partial update.
    """

    def __init__(
        self,
        opener: ChannelOpener | None = None,
        fetcher: CapabilityFetcher | None = None,
    ) -> None:
        self._opener: ChannelOpener = opener or open_channel
        self._fetcher = fetcher or CapabilityFetcher()
        self._states: dict[str, ConnectionState] = {}
        self._channels: dict[str, ChannelHandle] = {}
        self._inflight: dict[str, asyncio.Task[ConnectionState]] = {}

    # Lifecycle

    async def connect(self, config: ServerConfig) -> ConnectionState:
        """Connect ``config`` or return the live snapshot when already connected.

        Concurrent calls for one id share a single in-flight attempt.
        """
        inflight = self._inflight.get(config.id)
        if inflight is not None:
            return await self._await_connect(inflight, config)

        current = self._states.get(config.id)
        if (
            current is not None
            and current.status is ConnectionStatus.CONNECTED
            and config.id in self._channels
        ):
            logger.info(
                "mcp server already connected server_id=%s",
                config.id,
                extra={"run_id": "system"},
            )
            return current

        self._states[config.id] = ConnectionState.connecting(config)
        task = asyncio.create_task(self._connect(config), name=f"mcp-connect:{config.id}")
        task.add_done_callback(_retrieve_exception)
        self._inflight[config.id] = task
        return await self._await_connect(task, config)

    async def _await_connect(
        self, task: asyncio.Task[ConnectionState], config: ServerConfig
    ) -> ConnectionState:
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if task.cancelled() and not (current and current.cancelling()):
                raise TransportError(
                    f"Connection to {config.name} was cancelled",
                    details={"server_id": config.id},
                ) from None
            raise

    async def _connect(self, config: ServerConfig) -> ConnectionState:
        try:
            await self._release_channel(config.id)
            logger.info(
                "mcp server connecting server_id=%s name=%s transport=%s",
                config.id,
                config.name,
                config.transport.value,
                extra={"run_id": "system"},
            )
            try:
                channel = await self._opener(config)
            except MCPChatError as exc:
                self._record_failure(config, exc.message)
                raise
            except Exception as exc:
                message = describe_error(exc)
                self._record_failure(config, message)
                raise TransportError(message, details={"server_id": config.id}) from exc

            try:
                snapshot = await self._fetcher.fetch(channel, server_id=config.id)
            except BaseException:
                await self._close_quietly(config.id, channel)
                raise

            self._channels[config.id] = channel
            state = ConnectionState.connected(config, snapshot)
            self._states[config.id] = state
            logger.info(
                "mcp server connected server_id=%s tools=%s prompts=%s resources=%s",
                config.id,
                len(snapshot.tools),
                len(snapshot.prompts),
                len(snapshot.resources),
                extra={"run_id": "system"},
            )
            return state
        finally:
            if self._inflight.get(config.id) is asyncio.current_task():
                del self._inflight[config.id]

    def _record_failure(self, config: ServerConfig, message: str) -> None:
        logger.error(
            "mcp server connect failed server_id=%s error=%s",
            config.id,
            message,
            extra={"run_id": "system"},
        )
        self._states[config.id] = ConnectionState.failed(config, message)

    async def disconnect(self, server_id: str) -> None:
        """Close the channel (if any) and normalize the state to disconnected."""
        inflight = self._inflight.pop(server_id, None)
        if inflight is not None:
            inflight.cancel()
            await asyncio.gather(inflight, return_exceptions=True)
        await self._release_channel(server_id)
        current = self._states.get(server_id)
        # A connect issued while the cancelled attempt unwound owns the state now.
        if current is not None and server_id not in self._inflight:
            self._states[server_id] = ConnectionState.disconnected(current.config)

    async def remove(self, server_id: str) -> None:
        """Disconnect and forget the server entirely."""
        await self.disconnect(server_id)
        self._states.pop(server_id, None)

    async def close_all(self) -> None:
        server_ids = set(self._channels) | set(self._inflight)
        for server_id in server_ids:
            await self.disconnect(server_id)

    async def refresh_capabilities(self, server_id: str) -> ConnectionState:
        channel = self._require_channel(server_id)
        snapshot = await self._fetcher.fetch(channel, server_id=server_id)
        current = self._require_state(server_id)
        state = ConnectionState.connected(current.config, snapshot)
        self._states[server_id] = state
        return state

    async def _release_channel(self, server_id: str) -> None:
        channel = self._channels.pop(server_id, None)
        if channel is not None:
            await self._close_quietly(server_id, channel)

    async def _close_quietly(self, server_id: str, channel: ChannelHandle) -> None:
        try:
            await channel.close()
        except Exception:
            logger.warning(
                "error closing mcp channel server_id=%s",
                server_id,
                exc_info=True,
                extra={"run_id": "system"},
            )
        else:
            logger.info("mcp channel closed server_id=%s", server_id, extra={"run_id": "system"})

    # Pass-through requests

    def _require_state(self, server_id: str) -> ConnectionState:
        state = self._states.get(server_id)
        if state is None or state.status is not ConnectionStatus.CONNECTED:
            raise NotConnectedError(server_id)
        return state

    def _require_channel(self, server_id: str) -> ChannelHandle:
        self._require_state(server_id)
        channel = self._channels.get(server_id)
        if channel is None:
            raise NotConnectedError(server_id)
        return channel

    async def call_tool(
        self,
        server_id: str,
        tool_name: str,
        arguments: Mapping[str, Any] | None = None,
    ) -> ToolCallResponse:
        channel = self._require_channel(server_id)
        result = await channel.call_tool(tool_name, dict(arguments or {}))
        return ToolCallResponse.from_result(result)

    async def get_prompt(
        self,
        server_id: str,
        prompt_name: str,
        arguments: Mapping[str, str] | None = None,
    ) -> PromptGetResponse:
        channel = self._require_channel(server_id)
        result = await channel.get_prompt(prompt_name, arguments)
        return PromptGetResponse.from_result(result)

    async def read_resource(self, server_id: str, uri: str) -> ResourceReadResponse:
        channel = self._require_channel(server_id)
        result = await channel.read_resource(uri)
        return ResourceReadResponse.from_result(result)

    # Reads

    def get_state(self, server_id: str) -> ConnectionState | None:
        return self._states.get(server_id)

    def get_all_states(self) -> list[ConnectionState]:
        return list(self._states.values())

    def get_status(self, server_id: str) -> ConnectionStatus:
        state = self._states.get(server_id)
        return state.status if state else ConnectionStatus.DISCONNECTED

    def is_connected(self, server_id: str) -> bool:
        return server_id in self._channels and self.get_status(server_id) is ConnectionStatus.CONNECTED

    def connected_ids(self) -> list[str]:
        return [server_id for server_id in self._channels if self.is_connected(server_id)]

    def has_channel(self, server_id: str) -> bool:
        return server_id in self._channels
