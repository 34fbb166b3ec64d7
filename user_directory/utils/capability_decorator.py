"""
Decorator utilities for declaring MCP tools, resources and prompts.
"""
import json
import re
import functools
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Type, Union, get_type_hints
from pydantic import BaseModel, ValidationError, create_model
from mcp import types as mcp_types
from mcp.server.lowlevel.helper_types import ReadResourceContents

from user_directory.core.errors import UserDirectoryError
from user_directory.utils.result import Err, Ok

if TYPE_CHECKING:
    from user_directory.core.store import UserStore

logger = logging.getLogger(__name__)

_TEMPLATE_PARAM = re.compile(r"\{(\w+)\}")


@dataclass
class CapabilityContext:
    """What a capability handler may touch while serving one request."""
    store: "UserStore"
    config: Dict[str, Any] = field(default_factory=dict)
    session: Any = None  # mcp ServerSession of the calling client
    sampling_timeout: float = 60.0


def _input_model_from_signature(func: Callable, model_name: str) -> Type[BaseModel]:
    """Create an input model from a function signature."""
    hints = get_type_hints(func)
    # Remove 'context' and 'return' from hints
    hints = {k: (v, ...) for k, v in hints.items()
             if k not in ('context', 'return')}
    return create_model(model_name, **hints)


@dataclass
class ToolSpec:
    """Tool metadata and its handler."""
    name: str
    description: str
    func: Callable[..., Awaitable[Any]]
    input_model: Type[BaseModel]
    title: Optional[str] = None
    annotations: Optional[mcp_types.ToolAnnotations] = None
    config_defaults: Dict[str, Any] = field(default_factory=dict)

    def to_mcp(self) -> mcp_types.Tool:
        return mcp_types.Tool(
            name=self.name,
            title=self.title,
            description=self.description,
            inputSchema=self.input_model.model_json_schema(),
            annotations=self.annotations,
        )

    async def call(self, arguments: Optional[dict], context: CapabilityContext) -> List[mcp_types.TextContent]:
        """Validate arguments, run the tool and render its result as text."""
        logger.debug(f"Tool handler called for {self.name}")
        try:
            validated_input = self.input_model(**(arguments or {}))
        except ValidationError as e:
            result = Err(f"Invalid arguments for {self.name}: {e.error_count()} error(s)", e)
        else:
            result = await self.func(**validated_input.model_dump(), context=context)

        if isinstance(result, Ok):
            text = result.value if isinstance(result.value, str) else json.dumps(result.value)
        elif isinstance(result, Err):
            error = result.error.to_dict() if isinstance(result.error, UserDirectoryError) else repr(result.error)
            logger.warning(f"Tool {self.name} failed: {result.reason} ({error})")
            text = result.reason
        else:
            raise TypeError(f"Tool {self.name} returned {type(result).__name__}, expected Ok or Err")

        return [mcp_types.TextContent(type="text", text=text)]


@dataclass
class PromptSpec:
    """Prompt metadata and its handler."""
    name: str
    description: str
    func: Callable[..., Any]
    input_model: Type[BaseModel]
    title: Optional[str] = None

    def to_mcp(self) -> mcp_types.Prompt:
        arguments = [
            mcp_types.PromptArgument(
                name=field_name,
                description=info.description,
                required=info.is_required(),
            )
            for field_name, info in self.input_model.model_fields.items()
        ]
        return mcp_types.Prompt(
            name=self.name,
            title=self.title,
            description=self.description,
            arguments=arguments,
        )

    def render(self, arguments: Optional[Dict[str, str]]) -> mcp_types.GetPromptResult:
        """Render the prompt; invalid arguments are a protocol error."""
        try:
            validated_input = self.input_model(**(arguments or {}))
        except ValidationError as e:
            raise ValueError(f"Invalid arguments for prompt {self.name}: {e}") from e

        rendered = self.func(**validated_input.model_dump())
        if isinstance(rendered, str):
            rendered = [mcp_types.PromptMessage(
                role="user",
                content=mcp_types.TextContent(type="text", text=rendered),
            )]
        return mcp_types.GetPromptResult(description=self.description, messages=rendered)


@dataclass
class ResourceSpec:
    """Resource (static or templated) metadata and its handler."""
    name: str
    uri: str
    description: str
    func: Callable[..., Awaitable[Any]]
    title: Optional[str] = None
    mime_type: str = "application/json"
    _pattern: Optional["re.Pattern[str]"] = field(default=None, init=False, repr=False)

    def __post_init__(self):
        if self.is_template:
            regex = _TEMPLATE_PARAM.sub(r"(?P<\1>[^/]+)", re.escape(self.uri).replace(r"\{", "{").replace(r"\}", "}"))
            self._pattern = re.compile(f"^{regex}$")

    @property
    def is_template(self) -> bool:
        return bool(_TEMPLATE_PARAM.search(self.uri))

    def matches(self, uri: str) -> Optional[Dict[str, str]]:
        """Return the template parameters if ``uri`` addresses this resource."""
        if self._pattern is None:
            return {} if uri == self.uri else None
        match = self._pattern.match(uri)
        return match.groupdict() if match else None

    def to_mcp(self) -> Union[mcp_types.Resource, mcp_types.ResourceTemplate]:
        if self.is_template:
            return mcp_types.ResourceTemplate(
                uriTemplate=self.uri,
                name=self.name,
                title=self.title,
                description=self.description,
                mimeType=self.mime_type,
            )
        return mcp_types.Resource(
            uri=self.uri,
            name=self.name,
            title=self.title,
            description=self.description,
            mimeType=self.mime_type,
        )

    async def read(self, uri: str, params: Dict[str, str], context: CapabilityContext) -> List[ReadResourceContents]:
        payload = await self.func(uri, context=context, **params)
        text = payload if isinstance(payload, str) else json.dumps(payload)
        return [ReadResourceContents(content=text, mime_type=self.mime_type)]


def mcp_tool(
    name: str,
    description: str,
    *,
    title: Optional[str] = None,
    input_model: Optional[Type[BaseModel]] = None,
    annotations: Optional[mcp_types.ToolAnnotations] = None,
    config_defaults: Optional[Dict[str, Any]] = None,
):
    """
    Decorator to create an MCP tool from a function.

    The function receives the validated input fields as keyword arguments plus
    a ``context`` (:class:`CapabilityContext`) and returns ``Ok`` or ``Err``.

    Example:
    ```python
    @mcp_tool(
        name="create-user",
        description="Create a new user in the database",
        input_model=NewUser,
    )
    async def create_user(name: str, email: str, address: str, phone: str,
                          context: CapabilityContext) -> Result[str]:
        ...
    ```
    """
    def decorator(func):
        model = input_model or _input_model_from_signature(
            func, f"{func.__name__.title().replace('_', '')}Input"
        )

        @functools.wraps(func)
        async def wrapped_func(*args, **kwargs):
            return await func(*args, **kwargs)

        wrapped_func._capability = ToolSpec(
            name=name,
            description=description,
            func=wrapped_func,
            input_model=model,
            title=title,
            annotations=annotations,
            config_defaults=config_defaults or {},
        )
        return wrapped_func

    return decorator


def mcp_prompt(
    name: str,
    description: str,
    *,
    title: Optional[str] = None,
    input_model: Optional[Type[BaseModel]] = None,
):
    """Decorator to create an MCP prompt from a function returning message text."""
    def decorator(func):
        model = input_model or _input_model_from_signature(
            func, f"{func.__name__.title().replace('_', '')}Arguments"
        )
        func._capability = PromptSpec(
            name=name,
            description=description,
            func=func,
            input_model=model,
            title=title,
        )
        return func

    return decorator


def mcp_resource(
    name: str,
    uri: str,
    *,
    description: str,
    title: Optional[str] = None,
    mime_type: str = "application/json",
):
    """
    Decorator to create an MCP resource from a function.

    ``uri`` may be a template such as ``users://{userId}/profile``; the
    template parameters are passed to the function as keyword arguments.
    """
    def decorator(func):
        func._capability = ResourceSpec(
            name=name,
            uri=uri,
            description=description,
            func=func,
            title=title,
            mime_type=mime_type,
        )
        return func

    return decorator
