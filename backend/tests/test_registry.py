"""Tests for the connection registry lifecycle and pass-through operations."""

import asyncio

import pytest

from conftest import FakeOpener, stdio_config
from mcp_chat.mcp.errors import NotConnectedError, TransportError
from mcp_chat.mcp.registry import ConnectionRegistry
from mcp_chat.mcp.schema import ConnectionStatus


class TestConnect:
    """Tests for ConnectionRegistry.connect."""

    @pytest.mark.asyncio
    async def test_connect_stores_channel_and_capabilities(self, registry, opener):
        state = await registry.connect(stdio_config())

        assert state.status is ConnectionStatus.CONNECTED
        assert [tool.name for tool in state.tools] == ["list_files"]
        assert registry.is_connected("files")
        assert registry.connected_ids() == ["files"]
        assert opener.calls == ["files"]

    @pytest.mark.asyncio
    async def test_second_connect_reuses_live_channel(self, registry, opener):
        """connect is idempotent for an already connected id."""
        first = await registry.connect(stdio_config())
        second = await registry.connect(stdio_config())

        assert opener.calls == ["files"]
        assert second.tools == first.tools
        assert second.prompts == first.prompts
        assert second.resources == first.resources

    @pytest.mark.asyncio
    async def test_failed_open_records_error_state(self):
        registry = ConnectionRegistry(opener=FakeOpener(failures={"files": 1}))

        with pytest.raises(TransportError, match="Connection refused"):
            await registry.connect(stdio_config())

        state = registry.get_state("files")
        assert state.status is ConnectionStatus.ERROR
        assert "Connection refused" in state.error
        assert state.tools is None
        assert not registry.has_channel("files")

    @pytest.mark.asyncio
    async def test_retry_after_error_leaves_no_leaked_handle(self):
        """An error state followed by a connect either succeeds or fails cleanly."""
        opener = FakeOpener(failures={"files": 1})
        registry = ConnectionRegistry(opener=opener)

        with pytest.raises(TransportError):
            await registry.connect(stdio_config())
        assert not registry.has_channel("files")
        assert opener.channels == []

        state = await registry.connect(stdio_config())

        assert state.status is ConnectionStatus.CONNECTED
        assert state.error is None
        assert len(opener.channels) == 1
        assert registry.has_channel("files")

    @pytest.mark.asyncio
    async def test_unexpected_open_failure_becomes_transport_error(self):
        async def exploding_opener(config):
            raise OSError("No such file or directory: 'file-server'")

        registry = ConnectionRegistry(opener=exploding_opener)

        with pytest.raises(TransportError, match="No such file"):
            await registry.connect(stdio_config())
        assert registry.get_status("files") is ConnectionStatus.ERROR

    @pytest.mark.asyncio
    async def test_concurrent_connects_share_one_open(self):
        """Two requests racing on one id never open two channels."""
        gate = asyncio.Event()
        opener = FakeOpener(gate=gate)
        registry = ConnectionRegistry(opener=opener)

        first = asyncio.create_task(registry.connect(stdio_config()))
        second = asyncio.create_task(registry.connect(stdio_config()))
        await asyncio.sleep(0)
        assert registry.get_status("files") is ConnectionStatus.CONNECTING

        gate.set()
        states = await asyncio.gather(first, second)

        assert opener.calls == ["files"]
        assert len(opener.channels) == 1
        assert all(state.status is ConnectionStatus.CONNECTED for state in states)

    @pytest.mark.asyncio
    async def test_connecting_is_set_before_first_await(self):
        gate = asyncio.Event()
        registry = ConnectionRegistry(opener=FakeOpener(gate=gate))

        task = asyncio.create_task(registry.connect(stdio_config()))
        await asyncio.sleep(0)

        assert registry.get_state("files").status is ConnectionStatus.CONNECTING
        gate.set()
        await task

    @pytest.mark.asyncio
    async def test_disconnect_during_connect_keeps_newer_attempt_shared(self):
        """A connect issued while a cancelled attempt unwinds stays the only open."""
        gate = asyncio.Event()
        opener = FakeOpener(gate=gate)
        registry = ConnectionRegistry(opener=opener)

        first = asyncio.create_task(registry.connect(stdio_config()))
        while not opener.calls:
            await asyncio.sleep(0)

        disconnect = asyncio.create_task(registry.disconnect("files"))
        second = asyncio.create_task(registry.connect(stdio_config()))
        while not disconnect.done():
            await asyncio.sleep(0)
        third = asyncio.create_task(registry.connect(stdio_config()))

        gate.set()
        results = await asyncio.gather(first, second, third, return_exceptions=True)

        assert isinstance(results[0], TransportError)
        assert results[1] is results[2]
        assert opener.calls == ["files", "files"]
        assert len(opener.channels) == 1
        assert registry.get_status("files") is ConnectionStatus.CONNECTED

        await registry.close_all()
        assert opener.channels[0].close_calls == 1


class TestDisconnect:
    """Tests for disconnect, remove and close_all."""

    @pytest.mark.asyncio
    async def test_disconnect_closes_channel_and_clears_capabilities(self, registry, opener):
        await registry.connect(stdio_config())

        await registry.disconnect("files")

        state = registry.get_state("files")
        assert state.status is ConnectionStatus.DISCONNECTED
        assert state.tools is None and state.prompts is None and state.resources is None
        assert opener.channels[0].close_calls == 1
        assert not registry.has_channel("files")

    @pytest.mark.asyncio
    async def test_disconnect_after_error_normalizes_state(self):
        registry = ConnectionRegistry(opener=FakeOpener(failures={"files": 1}))
        with pytest.raises(TransportError):
            await registry.connect(stdio_config())

        await registry.disconnect("files")

        state = registry.get_state("files")
        assert state.status is ConnectionStatus.DISCONNECTED
        assert state.error is None

    @pytest.mark.asyncio
    async def test_disconnect_unknown_id_is_noop(self, registry):
        await registry.disconnect("ghost")

        assert registry.get_state("ghost") is None
        assert registry.get_status("ghost") is ConnectionStatus.DISCONNECTED

    @pytest.mark.asyncio
    async def test_close_failure_is_tolerated(self):
        """A channel that fails to close is still dropped from the table."""
        opener = FakeOpener(channel_kwargs={"files": {"close_error": RuntimeError("pipe broken")}})
        registry = ConnectionRegistry(opener=opener)
        await registry.connect(stdio_config())

        await registry.disconnect("files")

        assert registry.get_status("files") is ConnectionStatus.DISCONNECTED
        assert not registry.has_channel("files")

    @pytest.mark.asyncio
    async def test_reconnect_after_disconnect_opens_new_channel(self, registry, opener):
        await registry.connect(stdio_config())
        await registry.disconnect("files")

        state = await registry.connect(stdio_config())

        assert state.status is ConnectionStatus.CONNECTED
        assert len(opener.channels) == 2

    @pytest.mark.asyncio
    async def test_remove_forgets_server(self, registry):
        await registry.connect(stdio_config())

        await registry.remove("files")

        assert registry.get_state("files") is None
        assert registry.get_all_states() == []

    @pytest.mark.asyncio
    async def test_close_all_closes_every_channel(self, registry, opener):
        await registry.connect(stdio_config("files"))
        await registry.connect(stdio_config("notes", "Notes"))

        await registry.close_all()

        assert [channel.close_calls for channel in opener.channels] == [1, 1]
        assert registry.connected_ids() == []
        assert {state.status for state in registry.get_all_states()} == {ConnectionStatus.DISCONNECTED}


class TestPassThrough:
    """Tests for call_tool, get_prompt, read_resource and refresh."""

    @pytest.mark.asyncio
    async def test_call_tool_goes_over_live_channel(self, registry, opener):
        await registry.connect(stdio_config())

        response = await registry.call_tool("files", "list_files", {"path": "."})

        assert opener.channels[0].tool_calls == [("list_files", {"path": "."})]
        assert response.content == [{"type": "text", "text": "list_files ok"}]

    @pytest.mark.asyncio
    async def test_get_prompt_and_read_resource(self, registry):
        await registry.connect(stdio_config())

        prompt = await registry.get_prompt("files", "summarize", {"topic": "logs"})
        resource = await registry.read_resource("files", "notes://readme")

        assert prompt.description == "summarize prompt"
        assert prompt.messages[0]["content"]["text"] == "Summarize logs"
        assert resource.contents[0]["text"] == "hello"

    @pytest.mark.asyncio
    async def test_operations_on_unknown_id_raise_not_connected(self, registry):
        with pytest.raises(NotConnectedError, match="Server ghost is not connected"):
            await registry.call_tool("ghost", "list_files")

    @pytest.mark.asyncio
    async def test_operations_after_disconnect_raise_not_connected(self, registry):
        await registry.connect(stdio_config())
        await registry.disconnect("files")

        with pytest.raises(NotConnectedError):
            await registry.read_resource("files", "notes://readme")
        assert registry.get_status("files") is ConnectionStatus.DISCONNECTED

    @pytest.mark.asyncio
    async def test_refresh_capabilities_refetches(self, registry, opener):
        from conftest import make_tool

        await registry.connect(stdio_config())
        opener.channels[0].tools.append(make_tool("read_file"))

        state = await registry.refresh_capabilities("files")

        assert [tool.name for tool in state.tools] == ["list_files", "read_file"]
        assert len(opener.channels) == 1
