"""Provider-agnostic multi-turn chat loop with MCP tool round-trips."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any, Iterable, Sequence

from .events import ChatEvent, ErrorEvent, TextEvent, ToolCallEvent, ToolResultEvent
from .mcp.bridge import ToolBridge, split_tool_name
from .mcp.errors import MCPChatError, ToolExecutionError, describe_error
from .mcp.registry import ConnectionRegistry
from .mcp.schema import ServerConfig
from .providers.base import ChatTurn, Provider, ProviderError, ToolResult
from .providers.factory import ProviderFactory
from .run_logging import log_run
from .schemas import ChatMessage, ChatRequest

logger = logging.getLogger(__name__)

DEFAULT_MAX_TURNS = 10


def _display_parts(qualified_name: str) -> tuple[str, str]:
    """Return ``(server_id, tool_name)`` for event display."""
    try:
        return split_tool_name(qualified_name)
    except ToolExecutionError:
        return "unknown", qualified_name


def history_from_messages(messages: Iterable[ChatMessage]) -> list[ChatTurn]:
    return [ChatTurn(role=message.role, text=message.content) for message in messages]


class ConversationOrchestrator:
    """Drives one chat request to completion, yielding events as they happen.

    The loop sends history plus tool declarations to the provider, executes
    any requested tools sequentially through the bridge, feeds the results
    back, and stops on a final answer, a provider failure, or after
    ``max_turns`` provider calls.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        bridge: ToolBridge,
        providers: ProviderFactory,
        *,
        max_turns: int = DEFAULT_MAX_TURNS,
    ) -> None:
        self.registry = registry
        self.bridge = bridge
        self.providers = providers
        self.max_turns = max(1, max_turns)

    def parse_server_configs(
        self, payloads: Sequence[dict[str, Any]], run_id: str = "system"
    ) -> list[ServerConfig]:
        configs: list[ServerConfig] = []
        for payload in payloads:
            try:
                configs.append(ServerConfig.from_payload(payload))
            except MCPChatError as exc:
                log_run(
                    run_id,
                    "skipping invalid server config error=%s",
                    exc.message,
                    level=logging.WARNING,
                )
        return configs

    async def ensure_connections(
        self, configs: Sequence[ServerConfig], run_id: str = "system"
    ) -> list[str]:
        """Connect each config if needed; ids that fail are left out."""
        connected: list[str] = []
        for config in configs:
            if not self.registry.is_connected(config.id):
                log_run(run_id, "connecting mcp server name=%s", config.name)
                try:
                    await self.registry.connect(config)
                except MCPChatError as exc:
                    log_run(
                        run_id,
                        "mcp server unavailable server_id=%s error=%s",
                        config.id,
                        exc.message,
                        level=logging.WARNING,
                    )
                    continue
            if self.registry.is_connected(config.id) and config.id not in connected:
                connected.append(config.id)
        return connected

    async def run(self, request: ChatRequest, run_id: str = "system") -> AsyncIterator[ChatEvent]:
        try:
            provider = self.providers.create(request.provider, request.model)
            provider.require_api_key()
        except ProviderError as exc:
            log_run(run_id, "provider unavailable error=%s", exc.message, level=logging.ERROR)
            yield ErrorEvent(message=exc.message, kind=exc.kind)
            return

        connected_ids: list[str] = []
        if request.mcp_enabled and request.mcp_servers:
            configs = self.parse_server_configs(request.mcp_servers, run_id)
            connected_ids = await self.ensure_connections(configs, run_id)
        tools = self.bridge.to_provider_tools(provider, connected_ids) if connected_ids else []
        log_run(
            run_id,
            "chat run started provider=%s model=%s servers=%s tools=%s",
            provider.provider_name,
            provider.model,
            len(connected_ids),
            len(tools),
        )

        async for event in self._loop(provider, history_from_messages(request.messages), tools, run_id):
            yield event

    async def _loop(
        self,
        provider: Provider,
        history: list[ChatTurn],
        tools: list[dict[str, Any]],
        run_id: str,
    ) -> AsyncIterator[ChatEvent]:
        for turn_index in range(self.max_turns):
            try:
                reply = await provider.complete(history, tools or None)
            except ProviderError as exc:
                log_run(
                    run_id,
                    "provider call failed turn=%s kind=%s error=%s",
                    turn_index,
                    exc.kind,
                    exc.message,
                    level=logging.ERROR,
                )
                yield ErrorEvent(message=exc.message, kind=exc.kind)
                return
            except Exception as exc:
                logger.exception("provider call crashed", extra={"run_id": run_id})
                yield ErrorEvent(message=describe_error(exc), kind="api")
                return

            if reply.text:
                yield TextEvent(content=reply.text)
            if reply.is_final:
                log_run(run_id, "chat run finished turns=%s", turn_index + 1)
                return

            results: list[ToolResult] = []
            for call in reply.tool_calls:
                server_id, tool_name = _display_parts(call.name)
                yield ToolCallEvent(
                    call_id=call.call_id,
                    tool_name=tool_name,
                    args=dict(call.arguments),
                    server_id=server_id,
                )
                log_run(run_id, "dispatching tool server_id=%s tool=%s", server_id, tool_name)
                output = await self.bridge.dispatch(call.name, call.arguments)
                yield ToolResultEvent(
                    call_id=call.call_id,
                    tool_name=tool_name,
                    result=output,
                    server_id=server_id,
                )
                results.append(ToolResult(call_id=call.call_id, name=call.name, content=output))

            history.append(ChatTurn.assistant(reply.text, reply.tool_calls))
            history.append(ChatTurn.results(results))

        log_run(run_id, "chat run hit the turn limit max_turns=%s", self.max_turns, level=logging.WARNING)
        yield ErrorEvent(
            message=f"Stopped after {self.max_turns} model turns without a final answer",
            kind="max_turns",
        )
