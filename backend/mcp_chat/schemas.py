"""Shared Pydantic schemas for the HTTP request bodies."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RequestModel(BaseModel):
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


class ChatMessage(RequestModel):
    """One entry of the caller's message history."""

    role: Literal["user", "assistant"]
    content: str


class ChatRequest(RequestModel):
    """Structured request body for POST /chat."""

    messages: list[ChatMessage] = Field(..., min_length=1)
    mcp_servers: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Server configs to make available; invalid entries are skipped",
    )
    mcp_enabled: bool = True
    model: str | None = None
    provider: str | None = None


class ServerIdRequest(RequestModel):
    server_id: str = Field(..., min_length=1)


class CallToolRequest(RequestModel):
    server_id: str = Field(..., min_length=1)
    tool_name: str = Field(..., min_length=1)
    arguments: dict[str, Any] = Field(default_factory=dict)


class PromptGetRequest(RequestModel):
    server_id: str = Field(..., min_length=1)
    prompt_name: str = Field(..., min_length=1)
    arguments: dict[str, str] | None = None


class ResourceReadRequest(RequestModel):
    server_id: str = Field(..., min_length=1)
    uri: str = Field(..., min_length=1)
