"""Channel bindings for the three MCP transports.

Each :class:`Channel` owns a background task that enters the SDK transport
and session context managers and keeps them open until :meth:`Channel.close`
is called. Keeping enter and exit on the same task lets a channel opened while
serving one request be closed while serving another.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, AsyncIterator, Mapping

import httpx
from mcp import ClientSession, StdioServerParameters
from mcp import types
from mcp.client.sse import sse_client
from mcp.client.stdio import stdio_client
from mcp.client.streamable_http import streamablehttp_client
from pydantic import AnyUrl

from .errors import ConfigError, TransportError, describe_error
from .schema import ServerConfig, TransportType

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 30.0
CLOSE_TIMEOUT = 5.0


def describe_transport_failure(exc: BaseException) -> str:
    """Like describe_error, with HTTP failures reduced to status and address."""
    while isinstance(exc, BaseExceptionGroup) and exc.exceptions:
        exc = exc.exceptions[0]
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code} from {exc.request.url}"
    if isinstance(exc, httpx.TimeoutException):
        return "Timed out waiting for the server"
    if isinstance(exc, httpx.ConnectError):
        return f"Could not connect: {describe_error(exc)}"
    return describe_error(exc)


class TransportBinding(ABC):
    """Validates a config and produces the SDK read/write stream pair."""

    transport: TransportType
    required_fields: tuple[str, ...] = ()

    def __init__(self, config: ServerConfig):
        self.config = config
        self.validate()

    def validate(self) -> None:
        """Fail before any connection attempt when required fields are missing.

        ServerConfig validates the same fields; this also covers configs built
        with ``model_construct``.
        """
        if self.config.transport is not self.transport:
            raise ConfigError(
                f"{type(self).__name__} cannot open {self.config.transport.value} configs"
            )
        for field_name in self.required_fields:
            value = getattr(self.config, field_name, None)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ConfigError(
                    f"{field_name} is required for {self.transport.value} transport",
                    details={"server_id": self.config.id},
                )

    @abstractmethod
    def streams(self) -> Any:
        """Return an async context manager yielding ``(read_stream, write_stream)``."""


class StdioBinding(TransportBinding):
    """Spawns the server as a child process and talks over its standard streams."""

    transport = TransportType.STDIO
    required_fields = ("command",)

    def streams(self) -> Any:
        params = StdioServerParameters(
            command=self.config.command,
            args=list(self.config.args or []),
            env=dict(self.config.env) if self.config.env else None,
        )
        return stdio_client(params)


class StreamableHttpBinding(TransportBinding):
    transport = TransportType.STREAMABLE_HTTP
    required_fields = ("url",)

    @asynccontextmanager
    async def streams(self) -> AsyncIterator[tuple[Any, Any]]:
        async with streamablehttp_client(
            self.config.url, headers=dict(self.config.headers or {}) or None
        ) as (read, write, _get_session_id):
            yield read, write


class SseBinding(TransportBinding):
    transport = TransportType.SSE
    required_fields = ("url",)

    def streams(self) -> Any:
        return sse_client(self.config.url, headers=dict(self.config.headers or {}) or None)


BINDINGS: dict[TransportType, type[TransportBinding]] = {
    TransportType.STDIO: StdioBinding,
    TransportType.STREAMABLE_HTTP: StreamableHttpBinding,
    TransportType.SSE: SseBinding,
}


def binding_for(config: ServerConfig) -> TransportBinding:
    binding_cls = BINDINGS.get(config.transport)
    if binding_cls is None:
        raise ConfigError(f"Unsupported transport type: {config.transport}")
    return binding_cls(config)


class Channel:
    """A live, initialized MCP session to one server."""

    def __init__(
        self,
        config: ServerConfig,
        binding: TransportBinding,
        *,
        client_name: str = "mcp-chat",
        client_version: str = "1.0.0",
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ):
        self.config = config
        self.binding = binding
        self.client_info = types.Implementation(name=client_name, version=client_version)
        self.connect_timeout = connect_timeout
        self._session: ClientSession | None = None
        self._ready: asyncio.Future[None] | None = None
        self._closing = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def is_open(self) -> bool:
        return self._session is not None and not self._closing.is_set()

    async def open(self) -> "Channel":
        if self._task is not None:
            raise TransportError(f"Channel to {self.config.name} was already opened")
        self._ready = asyncio.get_running_loop().create_future()
        self._task = asyncio.create_task(self._serve(), name=f"mcp-channel:{self.config.id}")
        try:
            await asyncio.wait_for(asyncio.shield(self._ready), timeout=self.connect_timeout)
        except asyncio.TimeoutError:
            await self.close()
            raise TransportError(
                f"Timed out connecting to {self.config.name} after {self.connect_timeout:g}s"
            ) from None
        except asyncio.CancelledError:
            await self.close()
            current = asyncio.current_task()
            if self._ready.cancelled() and not (current and current.cancelling()):
                raise TransportError(
                    f"Connection to {self.config.name} closed during initialization"
                ) from None
            raise
        except BaseException:
            await self.close()
            raise
        logger.info(
            "mcp channel opened server_id=%s transport=%s",
            self.config.id,
            self.config.transport.value,
            extra={"run_id": "system"},
        )
        return self

    async def _serve(self) -> None:
        assert self._ready is not None
        try:
            async with AsyncExitStack() as stack:
                read, write = await stack.enter_async_context(self.binding.streams())
                session = await stack.enter_async_context(
                    ClientSession(read, write, client_info=self.client_info)
                )
                await session.initialize()
                self._session = session
                self._ready.set_result(None)
                await self._closing.wait()
        except Exception as exc:
            message = describe_transport_failure(exc)
            if not self._ready.done():
                self._ready.set_exception(TransportError(message, details={"server_id": self.config.id}))
            else:
                logger.warning(
                    "mcp channel terminated server_id=%s error=%s",
                    self.config.id,
                    message,
                    extra={"run_id": "system"},
                )
        finally:
            self._session = None
            if not self._ready.done():
                self._ready.cancel()

    def _ready_ok(self) -> bool:
        ready = self._ready
        return (
            ready is not None
            and ready.done()
            and not ready.cancelled()
            and ready.exception() is None
        )

    async def close(self) -> None:
        """Release the session and transport. Safe to call repeatedly."""
        self._closing.set()
        task = self._task
        if task is None or task.done():
            return
        if not self._ready_ok():
            task.cancel()
        done, _ = await asyncio.wait({task}, timeout=CLOSE_TIMEOUT)
        if not done:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    def _require_session(self) -> ClientSession:
        session = self._session
        if session is None or self._closing.is_set():
            raise TransportError(f"Channel to {self.config.name} is closed")
        return session

    async def list_tools(self) -> types.ListToolsResult:
        return await self._require_session().list_tools()

    async def list_prompts(self) -> types.ListPromptsResult:
        return await self._require_session().list_prompts()

    async def list_resources(self) -> types.ListResourcesResult:
        return await self._require_session().list_resources()

    async def call_tool(self, name: str, arguments: Mapping[str, Any]) -> types.CallToolResult:
        return await self._require_session().call_tool(name, dict(arguments))

    async def get_prompt(
        self, name: str, arguments: Mapping[str, str] | None = None
    ) -> types.GetPromptResult:
        return await self._require_session().get_prompt(
            name, dict(arguments) if arguments is not None else None
        )

    async def read_resource(self, uri: str) -> types.ReadResourceResult:
        return await self._require_session().read_resource(AnyUrl(uri))


async def open_channel(
    config: ServerConfig,
    *,
    client_name: str = "mcp-chat",
    client_version: str = "1.0.0",
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
) -> Channel:
    """Validate ``config`` and open an initialized channel to its server."""
    binding = binding_for(config)
    channel = Channel(
        config,
        binding,
        client_name=client_name,
        client_version=client_version,
        connect_timeout=connect_timeout,
    )
    return await channel.open()
