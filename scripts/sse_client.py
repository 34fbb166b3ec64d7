"""
Smoke test client for a running user directory server.

Connects over SSE, lists every capability, creates a user, asks the server
to create a random one (answering its sampling request with canned data)
and reads the results back.
"""
import asyncio
import json
import os
import traceback
from urllib.parse import urljoin

from mcp import ClientSession, types
from mcp.client.sse import sse_client
from pydantic import AnyUrl

FAKE_USER = {
    "name": "Grace Hopper",
    "email": "grace@example.com",
    "address": "1 Navy Yard, Arlington, VA",
    "phone": "+1 555 0100",
}


async def answer_sampling(context, params: types.CreateMessageRequestParams):
    """Play the agent: reply with a fenced JSON user."""
    print(f"\nSampling request: {params.messages[0].content.text}")
    return types.CreateMessageResult(
        role="assistant",
        content=types.TextContent(type="text", text="```json\n" + json.dumps(FAKE_USER) + "\n```"),
        model="smoke-test",
        stopReason="endTurn",
    )


async def smoke_test():
    base_url = os.getenv("MCP_SERVER_URL", "http://localhost:3000")
    sse_url = urljoin(base_url, "/sse")
    print(f"\nConnecting to MCP server at {sse_url}...")

    try:
        async with sse_client(sse_url) as (read, write):
            async with ClientSession(read, write, sampling_callback=answer_sampling) as session:
                await session.initialize()

                tools = await session.list_tools()
                print("\nTools:", [tool.name for tool in tools.tools])
                resources = await session.list_resources()
                print("Resources:", [str(r.uri) for r in resources.resources])
                templates = await session.list_resource_templates()
                print("Templates:", [t.uriTemplate for t in templates.resourceTemplates])
                prompts = await session.list_prompts()
                print("Prompts:", [p.name for p in prompts.prompts])

                result = await session.call_tool("create-user", arguments={
                    "name": "Ada Lovelace",
                    "email": "ada@example.com",
                    "address": "12 St James's Square, London",
                    "phone": "+44 20 7946 0000",
                })
                print("\ncreate-user:", result.content[0].text)

                result = await session.call_tool("create-random-user", arguments={})
                print("create-random-user:", result.content[0].text)

                users = await session.read_resource(AnyUrl("users://all"))
                print("\nusers://all:")
                print(json.dumps(json.loads(users.contents[0].text), indent=2))

                profile = await session.read_resource(AnyUrl("users://999/profile"))
                print("\nusers://999/profile:", profile.contents[0].text)

                prompt = await session.get_prompt("generate-fake-user", {"name": "Alan Turing"})
                print("\ngenerate-fake-user:", prompt.messages[0].content.text)

    except ConnectionRefusedError:
        print(f"Error: Could not connect to MCP server at {sse_url}")
        print("Make sure the server is running and the connection details are correct.")
    except Exception as e:
        print(f"Error during connection: {str(e)}")
        print("\nFull traceback:")
        traceback.print_exc()


if __name__ == "__main__":
    asyncio.run(smoke_test())
