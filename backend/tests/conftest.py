"""Shared fakes for registry, bridge, orchestrator and router tests."""

from __future__ import annotations

import asyncio
import copy
from typing import Any, Mapping, Sequence

import pytest
from mcp import types

from mcp_chat.mcp.bridge import ToolDeclaration
from mcp_chat.mcp.errors import TransportError
from mcp_chat.mcp.registry import ConnectionRegistry
from mcp_chat.mcp.schema import ServerConfig
from mcp_chat.providers.base import ChatTurn, Provider, ProviderTurn
from mcp_chat.providers.factory import ProviderFactory
from mcp_chat.settings import ChatSettings, HttpSettings, McpSettings, ProviderSettings, Settings


def make_tool(name: str, description: str | None = None, schema: dict[str, Any] | None = None) -> types.Tool:
    return types.Tool(
        name=name,
        description=description,
        inputSchema=schema if schema is not None else {"type": "object", "properties": {}},
    )


def stdio_config(server_id: str = "files", name: str = "File Server") -> ServerConfig:
    return ServerConfig.from_payload(
        {"id": server_id, "name": name, "transport": "stdio", "command": "file-server"}
    )


class FakeChannel:
    """In-memory stand-in for an open MCP channel."""

    def __init__(
        self,
        config: ServerConfig,
        *,
        tools: Sequence[types.Tool] = (),
        prompts: Sequence[types.Prompt] = (),
        resources: Sequence[types.Resource] = (),
        fail_kinds: Sequence[str] = (),
        tool_results: Mapping[str, Any] | None = None,
        close_error: Exception | None = None,
    ):
        self.config = config
        self.tools = list(tools)
        self.prompts = list(prompts)
        self.resources = list(resources)
        self.fail_kinds = set(fail_kinds)
        self.tool_results = dict(tool_results or {})
        self.close_error = close_error
        self.close_calls = 0
        self.tool_calls: list[tuple[str, dict[str, Any]]] = []

    async def list_tools(self) -> types.ListToolsResult:
        if "tools" in self.fail_kinds:
            raise RuntimeError("Method not found")
        return types.ListToolsResult(tools=self.tools)

    async def list_prompts(self) -> types.ListPromptsResult:
        if "prompts" in self.fail_kinds:
            raise RuntimeError("Method not found")
        return types.ListPromptsResult(prompts=self.prompts)

    async def list_resources(self) -> types.ListResourcesResult:
        if "resources" in self.fail_kinds:
            raise RuntimeError("Method not found")
        return types.ListResourcesResult(resources=self.resources)

    async def call_tool(self, name: str, arguments: Mapping[str, Any]) -> types.CallToolResult:
        self.tool_calls.append((name, dict(arguments)))
        outcome = self.tool_results.get(name)
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, types.CallToolResult):
            return outcome
        text = outcome if isinstance(outcome, str) else f"{name} ok"
        return types.CallToolResult(content=[types.TextContent(type="text", text=text)])

    async def get_prompt(self, name: str, arguments: Mapping[str, str] | None = None) -> types.GetPromptResult:
        topic = (arguments or {}).get("topic", "nothing")
        return types.GetPromptResult(
            description=f"{name} prompt",
            messages=[
                types.PromptMessage(
                    role="user", content=types.TextContent(type="text", text=f"Summarize {topic}")
                )
            ],
        )

    async def read_resource(self, uri: str) -> types.ReadResourceResult:
        return types.ReadResourceResult(
            contents=[types.TextResourceContents(uri=uri, mimeType="text/plain", text="hello")]
        )

    async def close(self) -> None:
        self.close_calls += 1
        if self.close_error is not None:
            raise self.close_error


class FakeOpener:
    """Async callable used as the registry's channel opener.

    ``failures`` maps a server id to how many opens should fail before one
    succeeds; ``gate`` (when set) holds every open until released.
    """

    def __init__(
        self,
        *,
        tools: Mapping[str, Sequence[types.Tool]] | None = None,
        failures: Mapping[str, int] | None = None,
        channel_kwargs: Mapping[str, Mapping[str, Any]] | None = None,
        gate: asyncio.Event | None = None,
    ):
        self.tools = dict(tools or {})
        self.failures = dict(failures or {})
        self.channel_kwargs = dict(channel_kwargs or {})
        self.gate = gate
        self.calls: list[str] = []
        self.channels: list[FakeChannel] = []

    async def __call__(self, config: ServerConfig) -> FakeChannel:
        self.calls.append(config.id)
        if self.gate is not None:
            await self.gate.wait()
        remaining = self.failures.get(config.id, 0)
        if remaining:
            self.failures[config.id] = remaining - 1
            raise TransportError(f"Connection refused by {config.name}")
        channel = FakeChannel(
            config,
            tools=self.tools.get(config.id, [make_tool("list_files", "List files")]),
            **dict(self.channel_kwargs.get(config.id, {})),
        )
        self.channels.append(channel)
        return channel


class ScriptedProvider(Provider):
    """Returns queued replies (or raises queued errors) in order."""

    def __init__(self, replies: Sequence[ProviderTurn | Exception], settings: ProviderSettings | None = None):
        super().__init__(model="scripted-1", settings=settings or make_provider_settings())
        self.replies = list(replies)
        self.histories: list[list[ChatTurn]] = []
        self.tools_seen: list[list[dict[str, Any]] | None] = []

    @property
    def provider_name(self) -> str:
        return "scripted"

    def get_api_key(self) -> str | None:
        return "test-key"

    def format_tools(self, declarations: Sequence[ToolDeclaration]) -> list[dict[str, Any]]:
        return [
            {"name": item.name, "description": item.description, "schema": item.input_schema}
            for item in declarations
        ]

    async def complete(
        self,
        history: Sequence[ChatTurn],
        tools: Sequence[dict[str, Any]] | None = None,
    ) -> ProviderTurn:
        self.histories.append(copy.deepcopy(list(history)))
        self.tools_seen.append(list(tools) if tools is not None else None)
        if not self.replies:
            raise AssertionError("provider called more often than scripted")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class FixedProviderFactory(ProviderFactory):
    """Hands out the same provider regardless of the selector."""

    def __init__(self, settings: ProviderSettings, provider: Provider):
        super().__init__(settings)
        self.provider = provider
        self.requested: list[tuple[str | None, str | None]] = []

    def create(self, provider: str | None = None, model: str | None = None) -> Provider:
        self.requested.append((provider, model))
        return self.provider


def make_provider_settings(**overrides: Any) -> ProviderSettings:
    values: dict[str, Any] = {
        "default_provider": "claude",
        "gemini_api_key": None,
        "gemini_model": "gemini-2.5-flash",
        "anthropic_api_key": None,
        "anthropic_model": "claude-sonnet-4-20250514",
        "openai_api_key": None,
        "openai_base_url": None,
        "openai_model": "gpt-4o-mini",
        "max_tokens": 8192,
    }
    values.update(overrides)
    return ProviderSettings(**values)


def make_settings(*, max_turns: int = 10, **provider_overrides: Any) -> Settings:
    return Settings(
        providers=make_provider_settings(**provider_overrides),
        chat=ChatSettings(max_turns=max_turns),
        mcp=McpSettings(client_name="mcp-chat-tests", client_version="0.0.1", connect_timeout_seconds=5.0),
        http=HttpSettings(cors_allow_origins=["*"], cors_allow_credentials=True),
    )


@pytest.fixture
def opener() -> FakeOpener:
    return FakeOpener()


@pytest.fixture
def registry(opener: FakeOpener) -> ConnectionRegistry:
    return ConnectionRegistry(opener=opener)


@pytest.fixture
def settings() -> Settings:
    return make_settings()
