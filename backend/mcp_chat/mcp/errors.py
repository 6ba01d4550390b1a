"""Error taxonomy shared by the MCP connection layer."""

from __future__ import annotations

from typing import Any, Mapping


class MCPChatError(Exception):
    """Base class for errors raised by the connection and orchestration core."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})


class ConfigError(MCPChatError, ValueError):
    """Raised when a server config is missing or carries invalid parameters."""


class TransportError(MCPChatError):
    """Raised when a channel cannot be opened or has been closed."""


class CapabilityFetchError(MCPChatError):
    """Raised (and logged, never propagated) when one capability listing fails."""


class NotConnectedError(MCPChatError):
    """Raised when an operation targets a server that is not connected."""

    def __init__(self, server_id: str):
        super().__init__(f"Server {server_id} is not connected", details={"server_id": server_id})
        self.server_id = server_id


class ToolExecutionError(MCPChatError):
    """Raised when a remote tool invocation fails."""


def describe_error(exc: BaseException) -> str:
    """Return a short human readable message, unwrapping task group errors."""
    while isinstance(exc, BaseExceptionGroup) and exc.exceptions:
        exc = exc.exceptions[0]
    text = str(exc).strip()
    return text or type(exc).__name__
