"""Command-line interface for inspecting and calling MCP servers."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from functools import partial
from typing import Any, Sequence

from .config_store import load_config_file
from .env import load_dotenv_if_present
from .mcp.errors import MCPChatError
from .mcp.registry import ConnectionRegistry
from .mcp.transports import open_channel
from .settings import get_settings


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="mcp-chat", description="Connect to MCP servers from an exported config file."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    tools_parser = subparsers.add_parser(
        "tools", help="Connect every configured server and print its capabilities."
    )
    tools_parser.add_argument("--config", required=True, help="Path to an exported config file.")

    call_parser = subparsers.add_parser("call", help="Invoke one tool on one server.")
    call_parser.add_argument("--config", required=True, help="Path to an exported config file.")
    call_parser.add_argument("server", help="Server id as it appears in the config file.")
    call_parser.add_argument("tool", help="Tool name on that server.")
    call_parser.add_argument(
        "--args",
        dest="tool_args",
        default="{}",
        help="Tool arguments as a JSON object (default: {}).",
    )
    return parser.parse_args(list(argv) if argv is not None else None)


def _build_registry() -> ConnectionRegistry:
    settings = get_settings()
    return ConnectionRegistry(
        opener=partial(
            open_channel,
            client_name=settings.mcp.client_name,
            client_version=settings.mcp.client_version,
            connect_timeout=settings.mcp.connect_timeout_seconds,
        )
    )


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2))


async def _list_capabilities(registry: ConnectionRegistry, config_path: str) -> int:
    configs = load_config_file(config_path)
    failures = 0
    for config in configs:
        try:
            await registry.connect(config)
        except MCPChatError as exc:
            failures += 1
            print(f"{config.id}: {exc.message}", file=sys.stderr)
    _print_json([state.to_wire() for state in registry.get_all_states()])
    return 1 if failures else 0


async def _call_tool(
    registry: ConnectionRegistry,
    config_path: str,
    server_id: str,
    tool_name: str,
    raw_args: str,
) -> int:
    try:
        arguments = json.loads(raw_args)
    except json.JSONDecodeError as exc:
        print(f"--args is not valid JSON: {exc.msg}", file=sys.stderr)
        return 2
    if not isinstance(arguments, dict):
        print("--args must be a JSON object", file=sys.stderr)
        return 2

    configs = {config.id: config for config in load_config_file(config_path)}
    config = configs.get(server_id)
    if config is None:
        print(f"Server {server_id} not found in {config_path}", file=sys.stderr)
        return 2
    await registry.connect(config)
    result = await registry.call_tool(server_id, tool_name, arguments)
    _print_json(result.to_wire())
    return 1 if result.is_error else 0


async def main(
    argv: Sequence[str] | None = None,
    *,
    registry: ConnectionRegistry | None = None,
) -> int:
    args = _parse_args(argv)
    load_dotenv_if_present()
    registry = registry or _build_registry()
    try:
        if args.command == "tools":
            return await _list_capabilities(registry, args.config)
        return await _call_tool(registry, args.config, args.server, args.tool, args.tool_args)
    except KeyboardInterrupt:
        print("Interrupted.", file=sys.stderr)
        return 1
    except (MCPChatError, OSError) as exc:
        message = exc.message if isinstance(exc, MCPChatError) else str(exc)
        print(f"mcp-chat failed: {message}", file=sys.stderr)
        return 1
    finally:
        await registry.close_all()


def entrypoint() -> None:
    """Synchronously run the async CLI for convenience."""
    raise SystemExit(asyncio.run(main()))


if __name__ == "__main__":  # pragma: no cover
    entrypoint()
