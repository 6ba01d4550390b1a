"""API router for the chat and MCP management endpoints.

This module is safe to import: it does not construct runtime singletons or
perform network side effects. Routes are wired with :func:`get_router`.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any, TypeVar

from fastapi import APIRouter, Header, Request, status
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ValidationError

from .events import ChatEvent, ErrorEvent, sse_event_stream
from .mcp.errors import ConfigError, MCPChatError, NotConnectedError, describe_error
from .mcp.schema import ConnectionState, ConnectionStatus, ServerConfig
from .schemas import (
    CallToolRequest,
    ChatRequest,
    PromptGetRequest,
    ResourceReadRequest,
    ServerIdRequest,
)

if TYPE_CHECKING:
    from .container import BackendContainer

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

FRIENDLY_PROVIDER_ERRORS = {
    "rate_limit": "The model provider's rate limit was reached, please retry shortly.",
    "connection": "Could not reach the model provider. Check your network connection.",
}


class BadRequestError(MCPChatError):
    """Raised for malformed request bodies or missing parameters."""


class UnknownServerError(MCPChatError):
    def __init__(self, server_id: str):
        super().__init__("Server not found", details={"server_id": server_id})
        self.server_id = server_id


def _log(message: str, run_id: str, *args: object) -> None:
    logger.info(message, *args, extra={"run_id": run_id})


def _ok(data: Any = None) -> JSONResponse:
    return JSONResponse({"success": True, "data": data})


def _fail(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


def error_status(exc: BaseException) -> int:
    """Map an exception raised while serving an /mcp route to its status code."""
    if isinstance(exc, (BadRequestError, ConfigError)):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, UnknownServerError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, NotConnectedError):
        return status.HTTP_409_CONFLICT
    return status.HTTP_502_BAD_GATEWAY


def _error_envelope(exc: Exception, action: str) -> JSONResponse:
    code = error_status(exc)
    message = exc.message if isinstance(exc, MCPChatError) else describe_error(exc)
    if code >= 500:
        logger.error("mcp %s failed error=%s", action, message, extra={"run_id": "system"})
    return _fail(message, code)


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise BadRequestError("Request body must be valid JSON") from exc


def _validate(model: type[ModelT], payload: Any) -> ModelT:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        fields = sorted(
            {".".join(str(part) for part in error.get("loc", ())) for error in exc.errors()}
        )
        raise BadRequestError(
            f"Missing or invalid fields: {', '.join(field for field in fields if field) or 'body'}"
        ) from None


def friendly_error(event: ErrorEvent) -> ErrorEvent:
    """Replace provider failures that have a known cause with readable text."""
    friendly = FRIENDLY_PROVIDER_ERRORS.get(event.kind or "")
    if friendly is None:
        return event
    return event.model_copy(update={"message": friendly})


def get_router(container: "BackendContainer") -> APIRouter:
    """Build API routes using the provided dependency container."""

    router = APIRouter()
    registry = container.registry

    def _known_state(server_id: str | None) -> ConnectionState:
        if not server_id:
            raise BadRequestError("Missing required parameter: serverId")
        state = registry.get_state(server_id)
        if state is None:
            raise UnknownServerError(server_id)
        return state

    def _connected_state(server_id: str | None) -> ConnectionState:
        state = _known_state(server_id)
        if state.status is not ConnectionStatus.CONNECTED:
            raise NotConnectedError(state.config.id)
        return state

    @router.post("/chat")
    async def chat(
        request: Request,
        payload: ChatRequest,
        x_run_id: str | None = Header(default=None, alias="X_Run_Id"),
    ) -> StreamingResponse:
        """Run the conversation loop and stream its events as SSE."""
        run_id = x_run_id or str(uuid.uuid4())
        _log(
            "chat request messages=%s servers=%s mcp_enabled=%s provider=%s client=%s",
            run_id,
            len(payload.messages),
            len(payload.mcp_servers),
            payload.mcp_enabled,
            payload.provider or container.settings.providers.default_provider,
            request.client.host if request.client else "unknown",
        )

        async def events() -> AsyncIterator[ChatEvent]:
            async for event in container.orchestrator.run(payload, run_id):
                yield friendly_error(event) if isinstance(event, ErrorEvent) else event

        response = StreamingResponse(sse_event_stream(events()), media_type="text/event-stream")
        response.headers["Cache-Control"] = "no-cache"
        response.headers["X-Accel-Buffering"] = "no"
        response.headers["X-Run-Id"] = run_id
        return response

    @router.post("/mcp/connect")
    async def connect_server(request: Request) -> JSONResponse:
        try:
            config = ServerConfig.from_payload(await _read_json(request))
            state = await registry.connect(config)
        except Exception as exc:
            return _error_envelope(exc, "connect")
        return _ok(state.to_wire())

    @router.post("/mcp/disconnect")
    async def disconnect_server(request: Request) -> JSONResponse:
        try:
            body = _validate(ServerIdRequest, await _read_json(request))
            await registry.disconnect(body.server_id)
        except Exception as exc:
            return _error_envelope(exc, "disconnect")
        state = registry.get_state(body.server_id)
        return _ok(state.to_wire() if state else None)

    @router.delete("/mcp/servers/{server_id}")
    async def remove_server(server_id: str) -> JSONResponse:
        try:
            _known_state(server_id)
            await registry.remove(server_id)
        except Exception as exc:
            return _error_envelope(exc, "remove")
        return _ok({"serverId": server_id})

    @router.get("/mcp/status")
    async def server_status(serverId: str | None = None) -> JSONResponse:
        if serverId is None:
            return _ok([state.to_wire() for state in registry.get_all_states()])
        try:
            state = _known_state(serverId)
        except Exception as exc:
            return _error_envelope(exc, "status")
        return _ok(state.to_wire())

    @router.post("/mcp/refresh")
    async def refresh_server(request: Request) -> JSONResponse:
        try:
            body = _validate(ServerIdRequest, await _read_json(request))
            _connected_state(body.server_id)
            state = await registry.refresh_capabilities(body.server_id)
        except Exception as exc:
            return _error_envelope(exc, "refresh")
        return _ok(state.to_wire())

    @router.get("/mcp/tools")
    async def list_tools(serverId: str | None = None) -> JSONResponse:
        try:
            state = _connected_state(serverId)
        except Exception as exc:
            return _error_envelope(exc, "list tools")
        return _ok([tool.to_wire() for tool in state.tools or []])

    @router.post("/mcp/tools")
    async def call_tool(request: Request) -> JSONResponse:
        try:
            body = _validate(CallToolRequest, await _read_json(request))
            _connected_state(body.server_id)
            result = await registry.call_tool(body.server_id, body.tool_name, body.arguments)
        except Exception as exc:
            return _error_envelope(exc, "call tool")
        return _ok(result.to_wire())

    @router.get("/mcp/prompts")
    async def list_prompts(serverId: str | None = None) -> JSONResponse:
        try:
            state = _connected_state(serverId)
        except Exception as exc:
            return _error_envelope(exc, "list prompts")
        return _ok([prompt.to_wire() for prompt in state.prompts or []])

    @router.post("/mcp/prompts")
    async def get_prompt(request: Request) -> JSONResponse:
        try:
            body = _validate(PromptGetRequest, await _read_json(request))
            _connected_state(body.server_id)
            result = await registry.get_prompt(body.server_id, body.prompt_name, body.arguments)
        except Exception as exc:
            return _error_envelope(exc, "get prompt")
        return _ok(result.to_wire())

    @router.get("/mcp/resources")
    async def list_resources(serverId: str | None = None) -> JSONResponse:
        try:
            state = _connected_state(serverId)
        except Exception as exc:
            return _error_envelope(exc, "list resources")
        return _ok([resource.to_wire() for resource in state.resources or []])

    @router.post("/mcp/resources")
    async def read_resource(request: Request) -> JSONResponse:
        try:
            body = _validate(ResourceReadRequest, await _read_json(request))
            _connected_state(body.server_id)
            result = await registry.read_resource(body.server_id, body.uri)
        except Exception as exc:
            return _error_envelope(exc, "read resource")
        return _ok(result.to_wire())

    return router
