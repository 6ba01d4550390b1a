"""Typed chat events and their server-sent-event framing."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ChatEventBase(BaseModel):
    """Common configuration for events streamed to the caller."""

    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class TextEvent(ChatEventBase):
    type: Literal["text"] = "text"
    content: str


class ToolCallEvent(ChatEventBase):
    """Emitted right before a requested tool is dispatched."""

    type: Literal["tool_call"] = "tool_call"
    call_id: str
    tool_name: str
    args: dict[str, Any] = Field(default_factory=dict)
    server_id: str


class ToolResultEvent(ChatEventBase):
    """Emitted once the dispatched tool has produced its text result."""

    type: Literal["tool_result"] = "tool_result"
    call_id: str
    tool_name: str
    result: str
    server_id: str


class ErrorEvent(ChatEventBase):
    """Terminal event; output emitted before it stays valid."""

    type: Literal["error"] = "error"
    message: str
    kind: str | None = None


ChatEvent = Union[TextEvent, ToolCallEvent, ToolResultEvent, ErrorEvent]


def format_sse(event: ChatEvent) -> str:
    data = json.dumps(event.to_wire(), separators=(",", ":"))
    return f"data: {data}\n\n"


async def sse_event_stream(events: AsyncIterator[ChatEvent]) -> AsyncIterator[str]:
    """Async generator yielding SSE frames as events are produced."""
    async for event in events:
        yield format_sse(event)
