"""
Capability management for the MCP server.
"""
import logging
from types import ModuleType
from typing import Dict, Iterable, List, Optional

from mcp import types as mcp_types
from mcp.server.lowlevel import Server

from user_directory.core.store import UserStore
from user_directory.utils.capability_decorator import (
    CapabilityContext,
    PromptSpec,
    ResourceSpec,
    ToolSpec,
)
from user_directory.utils.config_manager import ConfigManager

# Configure logging
logger = logging.getLogger(__name__)

class CapabilityRegistry:
    """Declare MCP resources, tools and prompts and route requests to them."""

    def __init__(
        self,
        app: Server,
        store: UserStore,
        config_manager: ConfigManager,
        sampling_timeout: float = 60.0,
    ):
        self.app = app
        self.store = store
        self.config_manager = config_manager
        self.sampling_timeout = sampling_timeout
        self.tools: Dict[str, ToolSpec] = {}
        self.prompts: Dict[str, PromptSpec] = {}
        self.resources: Dict[str, ResourceSpec] = {}

        self._register_handlers()

    def _register_handlers(self):
        """Register the global protocol handlers that route to capabilities."""
        app = self.app

        @app.list_tools()
        async def list_tools(_request=None) -> List[mcp_types.Tool]:
            return [tool.to_mcp() for tool in self.tools.values()]

        @app.call_tool()
        async def handle_tool(name: str, arguments: dict) -> List[mcp_types.TextContent]:
            """Global tool handler that routes to the appropriate tool."""
            logger.debug(f"Global handler received call for tool: {name}")
            return await self.call_tool(name, arguments)

        @app.list_resources()
        async def list_resources(_request=None) -> List[mcp_types.Resource]:
            return [r.to_mcp() for r in self.resources.values() if not r.is_template]

        @app.list_resource_templates()
        async def list_resource_templates(_request=None) -> List[mcp_types.ResourceTemplate]:
            return [r.to_mcp() for r in self.resources.values() if r.is_template]

        @app.read_resource()
        async def read_resource(uri):
            return await self.read_resource(str(uri))

        @app.list_prompts()
        async def list_prompts(_request=None) -> List[mcp_types.Prompt]:
            return [prompt.to_mcp() for prompt in self.prompts.values()]

        @app.get_prompt()
        async def get_prompt(name: str, arguments: Optional[Dict[str, str]]) -> mcp_types.GetPromptResult:
            return self.get_prompt(name, arguments)

    def _context(self, name: str, defaults: Optional[dict] = None) -> CapabilityContext:
        """Build the per-request context for a capability."""
        try:
            session = self.app.request_context.session
        except LookupError:
            session = None  # called outside a protocol request
        return CapabilityContext(
            store=self.store,
            config={**(defaults or {}), **self.config_manager.get_config(name)},
            session=session,
            sampling_timeout=self.sampling_timeout,
        )

    def register(self, capability) -> None:
        """Register a decorated capability function or a capability spec."""
        spec = getattr(capability, "_capability", capability)
        if isinstance(spec, ToolSpec):
            table = self.tools
        elif isinstance(spec, PromptSpec):
            table = self.prompts
        elif isinstance(spec, ResourceSpec):
            table = self.resources
        else:
            raise TypeError(f"Not an MCP capability: {capability!r}")

        if spec.name in table:
            logger.warning(f"Replacing already registered capability: {spec.name}")
        table[spec.name] = spec
        logger.debug(f"Registered {type(spec).__name__}: {spec.name}")

    def load_module(self, module: ModuleType) -> List[str]:
        """Register every decorated capability found in a module."""
        loaded = []
        for attr_name in dir(module):
            attr = getattr(module, attr_name)
            if hasattr(attr, "_capability"):
                self.register(attr)
                loaded.append(attr._capability.name)
        logger.info(f"Loaded capabilities from {module.__name__}: {loaded}")
        return loaded

    def load_modules(self, modules: Iterable[ModuleType]) -> List[str]:
        loaded = []
        for module in modules:
            loaded.extend(self.load_module(module))
        return loaded

    async def call_tool(self, name: str, arguments: Optional[dict]) -> List[mcp_types.TextContent]:
        """Run a tool. Failures come back as text content, never as exceptions."""
        tool = self.tools.get(name)
        if tool is None:
            error_msg = f"Unknown tool: {name}"
            logger.error(error_msg)
            return [mcp_types.TextContent(type="text", text=error_msg)]

        try:
            return await tool.call(arguments, self._context(name, tool.config_defaults))
        except Exception as e:
            logger.error(f"Error executing tool {name}: {str(e)}", exc_info=True)
            return [mcp_types.TextContent(
                type="text",
                text=f"Error executing tool {name}: {str(e)}"
            )]

    def find_resource(self, uri: str):
        """First resource whose URI or template matches ``uri``, with its parameters."""
        for resource in self.resources.values():
            params = resource.matches(uri)
            if params is not None:
                return resource, params
        raise ValueError(f"Unknown resource: {uri}")

    async def read_resource(self, uri: str):
        resource, params = self.find_resource(uri)
        logger.debug(f"Reading resource {resource.name} for {uri}")
        return await resource.read(uri, params, self._context(resource.name))

    def get_prompt(self, name: str, arguments: Optional[Dict[str, str]]) -> mcp_types.GetPromptResult:
        prompt = self.prompts.get(name)
        if prompt is None:
            raise ValueError(f"Unknown prompt: {name}")
        return prompt.render(arguments)
