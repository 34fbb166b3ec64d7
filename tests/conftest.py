"""Shared fixtures for the user directory tests."""

import pytest
from mcp import types

from user_directory.core.config import ServerConfig
from user_directory.core.server import UserDirectoryServer
from user_directory.core.store import UserStore
from user_directory.utils.config_manager import ConfigManager


@pytest.fixture
def server_config(tmp_path):
    config = ServerConfig()
    config.users_file = tmp_path / "data" / "users.json"
    config.config_dir = tmp_path / "config"
    config.sampling_timeout = 5.0
    config.watch_store = False
    return config


@pytest.fixture
def store(server_config):
    return UserStore(server_config.users_file)


@pytest.fixture
def config_manager(server_config):
    return ConfigManager(server_config.config_dir, environ={})


@pytest.fixture
def server(server_config, store, config_manager):
    return UserDirectoryServer(
        config=server_config,
        store=store,
        config_manager=config_manager,
    )


class SamplingAgent:
    """Client-side sampling callback that answers with fixed content."""

    def __init__(self, content):
        self.content = content
        self.requests = []

    async def __call__(self, context, params: types.CreateMessageRequestParams):
        self.requests.append(params)
        return types.CreateMessageResult(
            role="assistant",
            content=self.content,
            model="test-model",
            stopReason="endTurn",
        )


def text_reply(text: str) -> SamplingAgent:
    return SamplingAgent(types.TextContent(type="text", text=text))


ADA = {
    "name": "Ada Lovelace",
    "email": "ada@example.com",
    "address": "12 St James's Square, London",
    "phone": "+44 20 7946 0000",
}

GRACE = {
    "name": "Grace Hopper",
    "email": "grace@example.com",
    "address": "1 Navy Yard, Arlington, VA",
    "phone": "+1 555 0100",
}
