"""Tests for the mcp-chat command line."""

import json

import pytest

from conftest import FakeOpener
from mcp_chat.cli import main
from mcp_chat.mcp.registry import ConnectionRegistry

SERVERS = [
    {"id": "files", "name": "File Server", "transport": "stdio", "command": "file-server"},
    {"id": "down", "name": "Down", "transport": "sse", "url": "http://localhost:9/sse"},
]


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "servers.json"
    path.write_text(json.dumps(SERVERS), encoding="utf-8")
    return path


class TestCli:
    """Tests for the tools and call subcommands."""

    @pytest.mark.asyncio
    async def test_tools_prints_every_state(self, config_file, capsys):
        registry = ConnectionRegistry(opener=FakeOpener(failures={"down": 1}))

        exit_code = await main(["tools", "--config", str(config_file)], registry=registry)

        captured = capsys.readouterr()
        states = json.loads(captured.out)
        assert exit_code == 1
        assert [state["status"] for state in states] == ["connected", "error"]
        assert "down: Connection refused" in captured.err
        assert registry.connected_ids() == []

    @pytest.mark.asyncio
    async def test_call_invokes_tool(self, config_file, capsys):
        opener = FakeOpener()
        registry = ConnectionRegistry(opener=opener)

        exit_code = await main(
            ["call", "--config", str(config_file), "files", "list_files", "--args", '{"path": "."}'],
            registry=registry,
        )

        assert exit_code == 0
        assert json.loads(capsys.readouterr().out)["content"][0]["text"] == "list_files ok"
        assert opener.channels[0].tool_calls == [("list_files", {"path": "."})]
        assert opener.channels[0].close_calls == 1

    @pytest.mark.asyncio
    async def test_call_rejects_bad_arguments(self, config_file, capsys):
        registry = ConnectionRegistry(opener=FakeOpener())

        exit_code = await main(
            ["call", "--config", str(config_file), "files", "list_files", "--args", "[1]"],
            registry=registry,
        )

        assert exit_code == 2
        assert "JSON object" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_call_unknown_server(self, config_file, capsys):
        exit_code = await main(
            ["call", "--config", str(config_file), "ghost", "list_files"],
            registry=ConnectionRegistry(opener=FakeOpener()),
        )

        assert exit_code == 2
        assert "ghost not found" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_missing_config_file(self, tmp_path, capsys):
        exit_code = await main(
            ["tools", "--config", str(tmp_path / "nope.json")],
            registry=ConnectionRegistry(opener=FakeOpener()),
        )

        assert exit_code == 1
        assert "mcp-chat failed" in capsys.readouterr().err
