"""Shared MCP schema models."""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .errors import ConfigError

QUALIFIED_SEPARATOR = "__"


class TransportType(str, Enum):
    """Channel bindings a tool server can be reached through."""

    STDIO = "stdio"
    STREAMABLE_HTTP = "streamable-http"
    SSE = "sse"


class ConnectionStatus(str, Enum):
    """Lifecycle states of one registry entry."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class SchemaModel(BaseModel):
    """Base model exposing camelCase aliases on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


_STDIO_FIELDS = ("command", "args", "env")
_NETWORK_FIELDS = ("url", "headers")
_TRANSPORT_LABELS = {
    TransportType.STDIO: "STDIO",
    TransportType.STREAMABLE_HTTP: "Streamable HTTP",
    TransportType.SSE: "SSE",
}


class ServerConfig(SchemaModel):
    """Identity and connection parameters for one tool server."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True, extra="forbid"
    )

    id: str
    name: str = Field(..., min_length=1)
    transport: TransportType
    command: str | None = None
    args: list[str] | None = None
    env: dict[str, str] | None = None
    url: str | None = None
    headers: dict[str, str] | None = None

    @field_validator("id")
    @classmethod
    def _check_id(cls, value: str) -> str:
        if not value or not value.strip():
            raise ConfigError("id must not be empty")
        if QUALIFIED_SEPARATOR in value:
            raise ConfigError(f"id must not contain {QUALIFIED_SEPARATOR!r}")
        if value.endswith("_"):
            raise ConfigError("id must not end with '_'")
        return value

    @model_validator(mode="after")
    def _check_transport_fields(self) -> "ServerConfig":
        label = _TRANSPORT_LABELS[self.transport]
        if self.transport is TransportType.STDIO:
            if not self.command or not self.command.strip():
                raise ConfigError(f"Command is required for {label} transport")
            foreign = [name for name in _NETWORK_FIELDS if getattr(self, name) is not None]
        else:
            if not self.url or not self.url.strip():
                raise ConfigError(f"URL is required for {label} transport")
            parsed = urlparse(self.url)
            if parsed.scheme not in {"http", "https"} or not parsed.netloc:
                raise ConfigError(f"URL must be an absolute http(s) URL, got {self.url!r}")
            foreign = [name for name in _STDIO_FIELDS if getattr(self, name) is not None]
        if foreign:
            raise ConfigError(
                f"{', '.join(foreign)} not allowed for {label} transport"
            )
        return self

    @classmethod
    def from_payload(cls, payload: Any) -> "ServerConfig":
        """Validate untrusted input, converting failures into ConfigError."""
        if isinstance(payload, ServerConfig):
            return payload
        if not isinstance(payload, Mapping):
            raise ConfigError("Server config must be a JSON object")
        try:
            return cls.model_validate(dict(payload))
        except ValidationError as exc:
            raise ConfigError(
                _validation_message(exc),
                details={"errors": exc.errors(include_url=False, include_context=False)},
            ) from None


def _validation_message(exc: ValidationError) -> str:
    parts: list[str] = []
    for error in exc.errors(include_url=False):
        location = ".".join(str(item) for item in error.get("loc", ()))
        message = str(error.get("msg", "invalid value"))
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or "invalid server config"


class ToolDescriptor(SchemaModel):
    """A tool advertised by one server."""

    name: str
    description: str | None = None
    input_schema: dict[str, Any] | None = None


class PromptArgument(SchemaModel):
    name: str
    description: str | None = None
    required: bool | None = None


class PromptDescriptor(SchemaModel):
    """A prompt template advertised by one server."""

    name: str
    description: str | None = None
    arguments: list[PromptArgument] | None = None


class ResourceDescriptor(SchemaModel):
    """A readable resource advertised by one server."""

    uri: str
    name: str
    description: str | None = None
    mime_type: str | None = None


class CapabilitySnapshot(SchemaModel):
    """Tools, prompts and resources fetched from one channel."""

    tools: list[ToolDescriptor] = Field(default_factory=list)
    prompts: list[PromptDescriptor] = Field(default_factory=list)
    resources: list[ResourceDescriptor] = Field(default_factory=list)


class ConnectionState(SchemaModel):
    """Immutable snapshot of one server's connection.

    ``error`` is set only in the ``error`` status; capability lists are set
    only while ``connected``. Registry updates replace the whole snapshot.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    config: ServerConfig
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    error: str | None = None
    tools: list[ToolDescriptor] | None = None
    prompts: list[PromptDescriptor] | None = None
    resources: list[ResourceDescriptor] | None = None

    @model_validator(mode="after")
    def _check_invariants(self) -> "ConnectionState":
        if (self.error is not None) != (self.status is ConnectionStatus.ERROR):
            raise ValueError("error is present iff status is error")
        capabilities = (self.tools, self.prompts, self.resources)
        if self.status is ConnectionStatus.CONNECTED:
            if any(item is None for item in capabilities):
                raise ValueError("connected state requires tools, prompts and resources")
        elif any(item is not None for item in capabilities):
            raise ValueError("capabilities are only present while connected")
        return self

    @classmethod
    def connecting(cls, config: ServerConfig) -> "ConnectionState":
        return cls(config=config, status=ConnectionStatus.CONNECTING)

    @classmethod
    def disconnected(cls, config: ServerConfig) -> "ConnectionState":
        return cls(config=config, status=ConnectionStatus.DISCONNECTED)

    @classmethod
    def failed(cls, config: ServerConfig, error: str) -> "ConnectionState":
        return cls(config=config, status=ConnectionStatus.ERROR, error=error or "Unknown error")

    @classmethod
    def connected(cls, config: ServerConfig, snapshot: CapabilitySnapshot) -> "ConnectionState":
        return cls(
            config=config,
            status=ConnectionStatus.CONNECTED,
            tools=list(snapshot.tools),
            prompts=list(snapshot.prompts),
            resources=list(snapshot.resources),
        )


def _dump_part(part: Any) -> dict[str, Any]:
    if isinstance(part, BaseModel):
        return part.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(part, Mapping):
        return dict(part)
    return {"type": "unknown", "text": str(part)}


class ToolCallResponse(SchemaModel):
    """Result of a tool invocation as returned by the server."""

    content: list[dict[str, Any]] = Field(default_factory=list)
    is_error: bool | None = None

    @classmethod
    def from_result(cls, result: Any) -> "ToolCallResponse":
        content = getattr(result, "content", None) or []
        return cls(
            content=[_dump_part(part) for part in content],
            is_error=getattr(result, "isError", None),
        )


class PromptGetResponse(SchemaModel):
    description: str | None = None
    messages: list[dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: Any) -> "PromptGetResponse":
        return cls(
            description=getattr(result, "description", None),
            messages=[_dump_part(message) for message in getattr(result, "messages", None) or []],
        )


class ResourceReadResponse(SchemaModel):
    contents: list[dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: Any) -> "ResourceReadResponse":
        return cls(contents=[_dump_part(item) for item in getattr(result, "contents", None) or []])
