"""Anthropic Messages API adapter."""

from __future__ import annotations

import logging
from typing import Any, Sequence

import anthropic
from anthropic import AsyncAnthropic

from ..mcp.bridge import ToolDeclaration
from .base import ChatTurn, Provider, ProviderError, ProviderTurn, ToolCallRequest

logger = logging.getLogger(__name__)


def _turn_to_message(turn: ChatTurn) -> dict[str, Any]:
    if turn.tool_results:
        return {
            "role": "user",
            "content": [
                {
                    "type": "tool_result",
                    "tool_use_id": result.call_id,
                    "content": result.content,
                }
                for result in turn.tool_results
            ],
        }
    if turn.role == "assistant" and turn.tool_calls:
        blocks: list[dict[str, Any]] = []
        if turn.text:
            blocks.append({"type": "text", "text": turn.text})
        for call in turn.tool_calls:
            blocks.append(
                {
                    "type": "tool_use",
                    "id": call.call_id,
                    "name": call.name,
                    "input": dict(call.arguments),
                }
            )
        return {"role": "assistant", "content": blocks}
    return {"role": turn.role, "content": turn.text}


def _map_error(exc: anthropic.APIError) -> ProviderError:
    if isinstance(exc, anthropic.AuthenticationError):
        kind = "auth"
    elif isinstance(exc, anthropic.RateLimitError):
        kind = "rate_limit"
    elif isinstance(exc, anthropic.APIConnectionError):
        kind = "connection"
    else:
        kind = "api"
    return ProviderError(str(exc) or type(exc).__name__, kind=kind, provider="anthropic")


class AnthropicProvider(Provider):
    """Anthropic API provider implementation."""

    @property
    def provider_name(self) -> str:
        return "anthropic"

    @property
    def display_name(self) -> str:
        return "Anthropic"

    def get_api_key(self) -> str | None:
        return self.settings.anthropic_api_key

    def _get_client(self) -> AsyncAnthropic:
        if self._client is None:
            self._client = AsyncAnthropic(api_key=self.require_api_key())
        return self._client

    def format_tools(self, declarations: Sequence[ToolDeclaration]) -> list[dict[str, Any]]:
        return [
            {
                "name": declaration.name,
                "description": declaration.description,
                "input_schema": declaration.input_schema,
            }
            for declaration in declarations
        ]

    async def complete(
        self,
        history: Sequence[ChatTurn],
        tools: Sequence[dict[str, Any]] | None = None,
    ) -> ProviderTurn:
        """Generate one assistant turn using the Anthropic API."""
        client = self._get_client()
        request: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.settings.max_tokens,
            "messages": [_turn_to_message(turn) for turn in history],
        }
        if tools:
            request["tools"] = list(tools)
        try:
            response = await client.messages.create(**request)
        except anthropic.APIError as exc:
            raise _map_error(exc) from exc

        text_parts: list[str] = []
        tool_calls: list[ToolCallRequest] = []
        for block in response.content:
            block_type = getattr(block, "type", None)
            if block_type == "text":
                text_parts.append(block.text)
            elif block_type == "tool_use":
                tool_calls.append(
                    ToolCallRequest(
                        call_id=block.id,
                        name=block.name,
                        arguments=dict(block.input or {}),
                    )
                )
        if response.stop_reason != "tool_use":
            tool_calls = []
        logger.debug(
            "anthropic turn complete model=%s stop_reason=%s tool_calls=%s",
            response.model,
            response.stop_reason,
            len(tool_calls),
            extra={"run_id": "system"},
        )
        return ProviderTurn(
            text="".join(text_parts),
            tool_calls=tuple(tool_calls),
            stop_reason=response.stop_reason,
            model=response.model,
        )
