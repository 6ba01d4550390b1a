"""Google Gemini adapter with function-calling tools."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Sequence

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from ..mcp.bridge import ToolDeclaration
from .base import ChatTurn, Provider, ProviderError, ProviderTurn, ToolCallRequest

logger = logging.getLogger(__name__)


def _turn_to_content(turn: ChatTurn) -> dict[str, Any]:
    if turn.tool_results:
        return {
            "role": "user",
            "parts": [
                {
                    "function_response": {
                        "id": result.call_id,
                        "name": result.name,
                        "response": {"result": result.content},
                    }
                }
                for result in turn.tool_results
            ],
        }
    role = "model" if turn.role == "assistant" else "user"
    parts: list[dict[str, Any]] = []
    if turn.text or not turn.tool_calls:
        parts.append({"text": turn.text})
    for call in turn.tool_calls:
        parts.append(
            {
                "function_call": {
                    "id": call.call_id,
                    "name": call.name,
                    "args": dict(call.arguments),
                }
            }
        )
    return {"role": role, "parts": parts}


def _map_error(exc: Exception) -> ProviderError:
    if isinstance(exc, genai_errors.APIError):
        if exc.code in (401, 403):
            kind = "auth"
        elif exc.code == 429:
            kind = "rate_limit"
        else:
            kind = "api"
        message = exc.message or str(exc)
    else:
        kind = "connection"
        message = str(exc) or type(exc).__name__
    return ProviderError(message, kind=kind, provider="gemini")


def _finish_reason(candidate: Any) -> str | None:
    reason = getattr(candidate, "finish_reason", None)
    if reason is None:
        return None
    return str(getattr(reason, "value", reason))


class GeminiProvider(Provider):
    """Gemini API provider implementation."""

    @property
    def provider_name(self) -> str:
        return "gemini"

    def get_api_key(self) -> str | None:
        return self.settings.gemini_api_key

    def _get_client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(api_key=self.require_api_key())
        return self._client

    def format_tools(self, declarations: Sequence[ToolDeclaration]) -> list[dict[str, Any]]:
        if not declarations:
            return []
        return [
            {
                "function_declarations": [
                    {
                        "name": declaration.name,
                        "description": declaration.description,
                        "parameters_json_schema": declaration.input_schema,
                    }
                    for declaration in declarations
                ]
            }
        ]

    def _build_config(self, tools: Sequence[dict[str, Any]] | None) -> types.GenerateContentConfig:
        config_kwargs: dict[str, Any] = {"max_output_tokens": self.settings.max_tokens}
        if tools:
            config_kwargs["tools"] = [types.Tool.model_validate(tool) for tool in tools]
            config_kwargs["tool_config"] = types.ToolConfig(
                function_calling_config=types.FunctionCallingConfig(
                    mode=types.FunctionCallingConfigMode.AUTO
                )
            )
            config_kwargs["automatic_function_calling"] = types.AutomaticFunctionCallingConfig(
                disable=True
            )
        return types.GenerateContentConfig(**config_kwargs)

    async def complete(
        self,
        history: Sequence[ChatTurn],
        tools: Sequence[dict[str, Any]] | None = None,
    ) -> ProviderTurn:
        """Generate one model turn; any function call part makes it a tool turn."""
        client = self._get_client()
        try:
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=[_turn_to_content(turn) for turn in history],
                config=self._build_config(tools),
            )
        except (genai_errors.APIError, httpx.TransportError) as exc:
            raise _map_error(exc) from exc

        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            feedback = getattr(response, "prompt_feedback", None)
            reason = getattr(feedback, "block_reason", None)
            raise ProviderError(
                f"Gemini returned no candidates (block reason: {getattr(reason, 'value', reason)})",
                kind="api",
                provider="gemini",
            )

        candidate = candidates[0]
        content = getattr(candidate, "content", None)
        text_parts: list[str] = []
        tool_calls: list[ToolCallRequest] = []
        for part in getattr(content, "parts", None) or []:
            function_call = getattr(part, "function_call", None)
            if function_call is not None:
                tool_calls.append(
                    ToolCallRequest(
                        call_id=function_call.id or f"call_{uuid.uuid4().hex[:12]}",
                        name=function_call.name,
                        arguments=dict(function_call.args or {}),
                    )
                )
            elif getattr(part, "text", None) and not getattr(part, "thought", None):
                text_parts.append(part.text)

        stop_reason = _finish_reason(candidate)
        logger.debug(
            "gemini turn complete model=%s finish_reason=%s tool_calls=%s",
            self.model,
            stop_reason,
            len(tool_calls),
            extra={"run_id": "system"},
        )
        return ProviderTurn(
            text="".join(text_parts),
            tool_calls=tuple(tool_calls),
            stop_reason=stop_reason,
            model=getattr(response, "model_version", None) or self.model,
        )
