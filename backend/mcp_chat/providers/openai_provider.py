"""OpenAI chat completions adapter with function tools."""

from __future__ import annotations

import json
import logging
from typing import Any, Sequence

import openai
from openai import AsyncOpenAI

from ..mcp.bridge import ToolDeclaration
from .base import ChatTurn, Provider, ProviderError, ProviderTurn, ToolCallRequest

logger = logging.getLogger(__name__)

_client: AsyncOpenAI | None = None
_client_key: tuple[str, str | None] | None = None


def _get_client(api_key: str, base_url: str | None) -> AsyncOpenAI:
    global _client, _client_key
    if _client is None or _client_key != (api_key, base_url):
        client_kwargs: dict[str, Any] = {"api_key": api_key}
        if base_url:
            client_kwargs["base_url"] = base_url
        _client = AsyncOpenAI(**client_kwargs)
        _client_key = (api_key, base_url)
    return _client


def _turn_to_messages(turn: ChatTurn) -> list[dict[str, Any]]:
    if turn.tool_results:
        return [
            {"role": "tool", "tool_call_id": result.call_id, "content": result.content}
            for result in turn.tool_results
        ]
    if turn.role == "assistant" and turn.tool_calls:
        return [
            {
                "role": "assistant",
                "content": turn.text or None,
                "tool_calls": [
                    {
                        "id": call.call_id,
                        "type": "function",
                        "function": {
                            "name": call.name,
                            "arguments": json.dumps(call.arguments),
                        },
                    }
                    for call in turn.tool_calls
                ],
            }
        ]
    return [{"role": turn.role, "content": turn.text}]


def _parse_arguments(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("model sent malformed tool arguments", extra={"run_id": "system"})
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _map_error(exc: openai.APIError) -> ProviderError:
    if isinstance(exc, openai.AuthenticationError):
        kind = "auth"
    elif isinstance(exc, openai.RateLimitError):
        kind = "rate_limit"
    elif isinstance(exc, openai.APIConnectionError):
        kind = "connection"
    else:
        kind = "api"
    return ProviderError(str(exc) or type(exc).__name__, kind=kind, provider="openai")


class OpenAIProvider(Provider):
    """OpenAI API provider implementation."""

    @property
    def provider_name(self) -> str:
        return "openai"

    @property
    def display_name(self) -> str:
        return "OpenAI"

    def get_api_key(self) -> str | None:
        return self.settings.openai_api_key

    def _resolve_client(self) -> AsyncOpenAI:
        if self._client is not None:
            return self._client
        return _get_client(self.require_api_key(), self.settings.openai_base_url)

    def format_tools(self, declarations: Sequence[ToolDeclaration]) -> list[dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": declaration.name,
                    "description": declaration.description,
                    "parameters": declaration.input_schema,
                },
            }
            for declaration in declarations
        ]

    async def complete(
        self,
        history: Sequence[ChatTurn],
        tools: Sequence[dict[str, Any]] | None = None,
    ) -> ProviderTurn:
        client = self._resolve_client()
        messages: list[dict[str, Any]] = []
        for turn in history:
            messages.extend(_turn_to_messages(turn))
        completion_kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_tokens": self.settings.max_tokens,
        }
        if tools:
            completion_kwargs["tools"] = list(tools)
        try:
            response = await client.chat.completions.create(**completion_kwargs)
        except openai.APIError as exc:
            raise _map_error(exc) from exc

        choice = response.choices[0]
        message = choice.message
        tool_calls = tuple(
            ToolCallRequest(
                call_id=call.id,
                name=call.function.name,
                arguments=_parse_arguments(call.function.arguments),
            )
            for call in (message.tool_calls or [])
        )
        if choice.finish_reason != "tool_calls":
            tool_calls = ()
        return ProviderTurn(
            text=message.content or "",
            tool_calls=tool_calls,
            stop_reason=choice.finish_reason,
            model=getattr(response, "model", None),
        )
