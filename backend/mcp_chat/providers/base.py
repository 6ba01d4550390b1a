"""Provider contract and the provider-agnostic conversation representation.

Each vendor adapter translates :class:`ChatTurn` history into its own request
shape and its response back into a :class:`ProviderTurn`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Literal, Sequence

from ..mcp.bridge import ToolDeclaration
from ..mcp.errors import MCPChatError
from ..settings import ProviderSettings

ProviderErrorKind = Literal["auth", "rate_limit", "connection", "config", "api"]


class ProviderError(MCPChatError):
    """Raised when the model backend fails or cannot be used."""

    def __init__(self, message: str, *, kind: ProviderErrorKind = "api", provider: str = "unknown"):
        super().__init__(message, details={"kind": kind, "provider": provider})
        self.kind = kind
        self.provider = provider


@dataclass(frozen=True)
class ToolCallRequest:
    """One tool invocation requested by the model."""

    call_id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResult:
    call_id: str
    name: str
    content: str


@dataclass(frozen=True)
class ChatTurn:
    """One entry of the running history.

    A user turn carries either text or tool results; an assistant turn carries
    text and, when the model asked for tools, the tool-call requests.
    """

    role: Literal["user", "assistant"]
    text: str = ""
    tool_calls: tuple[ToolCallRequest, ...] = ()
    tool_results: tuple[ToolResult, ...] = ()

    @classmethod
    def user(cls, text: str) -> "ChatTurn":
        return cls(role="user", text=text)

    @classmethod
    def assistant(cls, text: str, tool_calls: Sequence[ToolCallRequest] = ()) -> "ChatTurn":
        return cls(role="assistant", text=text, tool_calls=tuple(tool_calls))

    @classmethod
    def results(cls, tool_results: Sequence[ToolResult]) -> "ChatTurn":
        return cls(role="user", tool_results=tuple(tool_results))


@dataclass(frozen=True)
class ProviderTurn:
    """Normalized reply: final text, or text plus tool-call requests."""

    text: str = ""
    tool_calls: tuple[ToolCallRequest, ...] = ()
    stop_reason: str | None = None
    model: str | None = None

    @property
    def is_final(self) -> bool:
        return not self.tool_calls


class Provider(ABC):
    """Abstract base class for chat model providers."""

    def __init__(self, model: str, settings: ProviderSettings, client: Any | None = None):
        self.model = model
        self.settings = settings
        self._client = client

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""

    @abstractmethod
    def get_api_key(self) -> str | None:
        """Return the configured credential, if any."""

    @abstractmethod
    def format_tools(self, declarations: Sequence[ToolDeclaration]) -> list[dict[str, Any]]:
        """Render tool declarations in this vendor's schema shape."""

    @abstractmethod
    async def complete(
        self,
        history: Sequence[ChatTurn],
        tools: Sequence[dict[str, Any]] | None = None,
    ) -> ProviderTurn:
        """Send ``history`` plus native ``tools`` and return the normalized reply."""

    def require_api_key(self) -> str:
        api_key = self.get_api_key()
        if not api_key:
            raise ProviderError(
                f"{self.display_name} API key not configured",
                kind="auth",
                provider=self.provider_name,
            )
        return api_key

    @property
    def display_name(self) -> str:
        return self.provider_name.capitalize()
