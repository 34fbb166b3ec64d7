"""Protocol-level tests: a real MCP client talking to the server in memory."""

import json
import logging

import anyio
import pytest
from mcp import types
from mcp.shared.exceptions import McpError
from mcp.shared.memory import create_connected_server_and_client_session
from pydantic import AnyUrl

from user_directory.capabilities.tools import GENERATE_USER_PROMPT

from conftest import ADA, GRACE, SamplingAgent, text_reply


def connect(server, sampling_callback=None):
    return create_connected_server_and_client_session(
        server.app, sampling_callback=sampling_callback
    )


async def read_json(client, uri):
    result = await client.read_resource(AnyUrl(uri))
    assert len(result.contents) == 1
    content = result.contents[0]
    assert content.mimeType == "application/json"
    return json.loads(content.text)


def tool_text(result: types.CallToolResult) -> str:
    assert len(result.content) == 1
    return result.content[0].text


class TestListing:
    @pytest.mark.asyncio
    async def test_tools(self, server):
        async with connect(server) as client:
            tools = {t.name: t for t in (await client.list_tools()).tools}

        assert set(tools) == {"create-user", "create-random-user"}
        create_user = tools["create-user"]
        assert create_user.title == "Create User"
        assert set(create_user.inputSchema["required"]) == {"name", "email", "address", "phone"}
        assert create_user.annotations.readOnlyHint is False
        assert create_user.annotations.openWorldHint is True
        assert tools["create-random-user"].inputSchema.get("properties", {}) == {}

    @pytest.mark.asyncio
    async def test_resources(self, server):
        async with connect(server) as client:
            resources = (await client.list_resources()).resources
            templates = (await client.list_resource_templates()).resourceTemplates

        assert [str(r.uri) for r in resources] == ["users://all"]
        assert resources[0].name == "users"
        assert [t.uriTemplate for t in templates] == ["users://{userId}/profile"]
        assert templates[0].name == "user-details"

    @pytest.mark.asyncio
    async def test_prompts(self, server):
        async with connect(server) as client:
            prompts = (await client.list_prompts()).prompts

        assert [p.name for p in prompts] == ["generate-fake-user"]
        assert [(a.name, a.required) for a in prompts[0].arguments] == [("name", True)]


class TestUserResources:
    @pytest.mark.asyncio
    async def test_all_users_empty(self, server):
        async with connect(server) as client:
            assert await read_json(client, "users://all") == []

    @pytest.mark.asyncio
    async def test_all_users_counts_sequential_creations(self, server):
        async with connect(server) as client:
            for i in range(3):
                await client.call_tool("create-user", {**ADA, "name": f"User {i}"})
            users = await read_json(client, "users://all")

        assert [u["id"] for u in users] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_profile_round_trip(self, server):
        async with connect(server) as client:
            await client.call_tool("create-user", ADA)
            result = await client.call_tool("create-user", GRACE)
            assert tool_text(result) == "User 2 created successfully"

            profile = await read_json(client, "users://2/profile")

        assert profile == {"id": 2, **GRACE}

    @pytest.mark.asyncio
    async def test_profile_not_found_is_payload(self, server):
        async with connect(server) as client:
            await client.call_tool("create-user", ADA)
            assert await read_json(client, "users://2/profile") == {"error": "User not found"}

    @pytest.mark.asyncio
    async def test_non_numeric_id_not_found(self, server):
        async with connect(server) as client:
            await client.call_tool("create-user", ADA)
            assert await read_json(client, "users://abc/profile") == {"error": "User not found"}

    @pytest.mark.asyncio
    async def test_id_uses_leading_digits(self, server):
        async with connect(server) as client:
            await client.call_tool("create-user", ADA)
            await client.call_tool("create-user", GRACE)
            assert await read_json(client, "users://2.5/profile") == {"id": 2, **GRACE}
            assert await read_json(client, "users://1abc/profile") == {"id": 1, **ADA}

    @pytest.mark.asyncio
    async def test_unknown_uri_is_protocol_error(self, server):
        async with connect(server) as client:
            with pytest.raises(McpError):
                await client.read_resource(AnyUrl("users://1/friends"))


class TestCreateUser:
    @pytest.mark.asyncio
    async def test_success(self, server, store):
        async with connect(server) as client:
            result = await client.call_tool("create-user", ADA)

        assert tool_text(result) == "User 1 created successfully"
        assert not result.isError
        assert (await store.get(1)).model_dump(exclude={"id"}) == ADA

    @pytest.mark.asyncio
    async def test_storage_failure_is_text(self, server, server_config):
        server_config.users_file.parent.mkdir(parents=True)
        server_config.users_file.write_text('{"broken": true}')

        async with connect(server) as client:
            result = await client.call_tool("create-user", ADA)

        assert tool_text(result) == "Failed to save user"

    @pytest.mark.asyncio
    async def test_missing_field_is_rejected(self, server, store):
        async with connect(server) as client:
            result = await client.call_tool("create-user", {"name": "Only Name"})

        assert result.isError or "Invalid arguments" in tool_text(result)
        assert await store.read_all() == []

    @pytest.mark.asyncio
    async def test_unknown_tool(self, server):
        async with connect(server) as client:
            result = await client.call_tool("delete-user", {})

        assert "delete-user" in result.content[0].text


class TestCreateRandomUser:
    @pytest.mark.asyncio
    async def test_plain_json_reply(self, server, store):
        agent = text_reply(json.dumps(GRACE))
        async with connect(server, agent) as client:
            result = await client.call_tool("create-random-user", {})

        assert tool_text(result) == "User 1 created successfully"
        assert (await store.get(1)).to_record() == {"id": 1, **GRACE}

    @pytest.mark.asyncio
    async def test_fenced_json_reply(self, server, store):
        agent = text_reply("```json\n" + json.dumps(GRACE, indent=2) + "\n```")
        async with connect(server, agent) as client:
            await client.call_tool("create-user", ADA)
            result = await client.call_tool("create-random-user", {})
            profile = await read_json(client, "users://2/profile")

        assert tool_text(result) == "User 2 created successfully"
        assert profile == {"id": 2, **GRACE}

    @pytest.mark.asyncio
    async def test_sampling_request_shape(self, server):
        agent = text_reply(json.dumps(GRACE))
        async with connect(server, agent) as client:
            await client.call_tool("create-random-user", {})

        assert len(agent.requests) == 1
        params = agent.requests[0]
        assert params.maxTokens == 1024
        assert params.messages[0].role == "user"
        assert params.messages[0].content.text == GENERATE_USER_PROMPT

    @pytest.mark.asyncio
    async def test_unparsable_reply(self, server, store):
        agent = text_reply("Sure! Here is a user: Ada, ada@example.com")
        async with connect(server, agent) as client:
            result = await client.call_tool("create-random-user", {})

        assert tool_text(result) == "Failed to generate user data"
        assert await store.read_all() == []

    @pytest.mark.asyncio
    async def test_incomplete_user_reply(self, server, store):
        agent = text_reply(json.dumps({"name": "Nobody"}))
        async with connect(server, agent) as client:
            result = await client.call_tool("create-random-user", {})

        assert tool_text(result) == "Failed to generate user data"
        assert await store.read_all() == []

    @pytest.mark.asyncio
    async def test_non_text_reply(self, server, store):
        agent = SamplingAgent(types.ImageContent(type="image", data="aGVsbG8=", mimeType="image/png"))
        async with connect(server, agent) as client:
            result = await client.call_tool("create-random-user", {})

        assert tool_text(result) == "Failed to generate user data"
        assert await store.read_all() == []

    @pytest.mark.asyncio
    async def test_client_without_sampling(self, server, store):
        async with connect(server) as client:
            result = await client.call_tool("create-random-user", {})

        assert tool_text(result) == "Failed to generate user data"
        assert await store.read_all() == []

    @pytest.mark.asyncio
    async def test_failure_logs_error_details(self, server, caplog):
        caplog.set_level(logging.WARNING, logger="user_directory")
        async with connect(server) as client:
            await client.call_tool("create-random-user", {})

        assert "'type': 'SamplingUnsupported'" in caplog.text

    @pytest.mark.asyncio
    async def test_client_error_reply(self, server, store):
        async def refuse(context, params):
            return types.ErrorData(code=types.INVALID_REQUEST, message="Sampling disabled by user")

        async with connect(server, refuse) as client:
            result = await client.call_tool("create-random-user", {})

        assert tool_text(result) == "Failed to generate user data"
        assert await store.read_all() == []

    @pytest.mark.asyncio
    async def test_reply_missing_result_fields(self, server, store):
        async def empty(context, params):
            # Valid JSON-RPC result, but no role, content or model
            return types.EmptyResult()

        async with connect(server, empty) as client:
            result = await client.call_tool("create-random-user", {})

        assert tool_text(result) == "Failed to generate user data"
        assert await store.read_all() == []

    @pytest.mark.asyncio
    async def test_slow_reply_times_out(self, server, store, server_config):
        server.capabilities.sampling_timeout = 0.1

        async def stall(context, params):
            await anyio.sleep(1)
            return types.CreateMessageResult(
                role="assistant",
                content=types.TextContent(type="text", text=json.dumps(GRACE)),
                model="test-model",
            )

        async with connect(server, stall) as client:
            result = await client.call_tool("create-random-user", {})

        assert tool_text(result) == "Failed to generate user data"
        assert await store.read_all() == []


class TestPrompt:
    @pytest.mark.asyncio
    async def test_generate_fake_user(self, server, store):
        async with connect(server) as client:
            result = await client.get_prompt("generate-fake-user", {"name": "Ada"})

        assert len(result.messages) == 1
        message = result.messages[0]
        assert message.role == "user"
        assert message.content.text == (
            "Generate a fake user with the name Ada. The user should have a "
            "realistic email, address, and phone number."
        )
        assert await store.read_all() == []

    @pytest.mark.asyncio
    async def test_missing_name(self, server):
        async with connect(server) as client:
            with pytest.raises(McpError):
                await client.get_prompt("generate-fake-user", {})

    @pytest.mark.asyncio
    async def test_unknown_prompt(self, server):
        async with connect(server) as client:
            with pytest.raises(McpError):
                await client.get_prompt("generate-fake-admin", {"name": "Ada"})
