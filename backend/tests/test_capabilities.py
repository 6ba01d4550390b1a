"""Tests for capability fetching and normalization."""

import pytest
from mcp import types

from conftest import FakeChannel, make_tool, stdio_config
from mcp_chat.mcp.capabilities import CapabilityFetcher, prompt_from_mcp, resource_from_mcp


class TestCapabilityFetcher:
    """Tests for CapabilityFetcher.fetch."""

    @pytest.mark.asyncio
    async def test_fetch_normalizes_all_three_kinds(self):
        channel = FakeChannel(
            stdio_config(),
            tools=[make_tool("list_files", "List files")],
            prompts=[
                types.Prompt(
                    name="summarize",
                    description="Summarize a topic",
                    arguments=[types.PromptArgument(name="topic", required=True)],
                )
            ],
            resources=[types.Resource(uri="notes://readme", name="readme", mimeType="text/plain")],
        )

        snapshot = await CapabilityFetcher().fetch(channel, server_id="files")

        assert [tool.name for tool in snapshot.tools] == ["list_files"]
        assert snapshot.tools[0].input_schema == {"type": "object", "properties": {}}
        assert snapshot.prompts[0].arguments[0].name == "topic"
        assert snapshot.prompts[0].arguments[0].required is True
        assert snapshot.resources[0].uri == "notes://readme"
        assert snapshot.resources[0].mime_type == "text/plain"

    @pytest.mark.asyncio
    async def test_one_failing_kind_degrades_to_empty(self):
        """A server without prompt support still yields tools and resources."""
        channel = FakeChannel(
            stdio_config(),
            tools=[make_tool("list_files")],
            resources=[types.Resource(uri="notes://readme", name="readme")],
            fail_kinds=["prompts"],
        )

        snapshot = await CapabilityFetcher().fetch(channel, server_id="files")

        assert snapshot.prompts == []
        assert [tool.name for tool in snapshot.tools] == ["list_files"]
        assert len(snapshot.resources) == 1

    @pytest.mark.asyncio
    async def test_all_kinds_failing_still_succeeds(self):
        channel = FakeChannel(stdio_config(), fail_kinds=["tools", "prompts", "resources"])

        snapshot = await CapabilityFetcher().fetch(channel)

        assert snapshot.tools == [] and snapshot.prompts == [] and snapshot.resources == []


class TestConverters:
    def test_prompt_without_arguments_keeps_none(self):
        descriptor = prompt_from_mcp(types.Prompt(name="greet"))

        assert descriptor.arguments is None
        assert descriptor.description is None

    def test_resource_uri_is_plain_string(self):
        descriptor = resource_from_mcp(types.Resource(uri="file:///tmp/a.txt", name="a"))

        assert descriptor.uri == "file:///tmp/a.txt"
        assert descriptor.to_wire() == {"uri": "file:///tmp/a.txt", "name": "a"}
