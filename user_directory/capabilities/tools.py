"""
Tools that create users.
"""
import logging

from mcp import types as mcp_types

from user_directory.core.errors import MalformedStore, ToolExecutionFailure
from user_directory.core.sampling import parse_generated_user, request_text
from user_directory.core.store import NewUser
from user_directory.utils.capability_decorator import CapabilityContext, mcp_tool
from user_directory.utils.result import Err, Ok, Result

logger = logging.getLogger(__name__)

GENERATE_USER_PROMPT = (
    "Generate fake user data. The user should have a realistic name, email, "
    "address, and phone number. Return this data as a JSON object with no other "
    "text or formatter so it can be used with JSON.parse."
)

_WRITE_ANNOTATIONS = dict(
    readOnlyHint=False,
    destructiveHint=False,
    idempotentHint=False,
    openWorldHint=True,
)


async def store_user(context: CapabilityContext, new_user: NewUser) -> Result[str]:
    """Append a user and describe the outcome."""
    try:
        user_id = await context.store.append(new_user)
    except (OSError, ValueError, MalformedStore) as e:
        logger.error(f"Failed to save user: {e}")
        failure = ToolExecutionFailure("Failed to save user", details={"error": str(e)})
        failure.__cause__ = e
        return Err("Failed to save user", failure)
    return Ok(f"User {user_id} created successfully")


@mcp_tool(
    name="create-user",
    title="Create User",
    description="Create a new user in the database",
    input_model=NewUser,
    annotations=mcp_types.ToolAnnotations(title="Create User", **_WRITE_ANNOTATIONS),
)
async def create_user(name: str, email: str, address: str, phone: str,
                      context: CapabilityContext) -> Result[str]:
    return await store_user(
        context, NewUser(name=name, email=email, address=address, phone=phone)
    )


@mcp_tool(
    name="create-random-user",
    title="Create Random User",
    description="Create a random user with fake data",
    annotations=mcp_types.ToolAnnotations(title="Create Random User", **_WRITE_ANNOTATIONS),
    config_defaults={
        "max_tokens": 1024,
        "prompt": GENERATE_USER_PROMPT,
    },
)
async def create_random_user(context: CapabilityContext) -> Result[str]:
    """Have the client's model invent a user, then store it."""
    generated = await request_text(
        context.session,
        prompt=context.config.get("prompt", GENERATE_USER_PROMPT),
        max_tokens=int(context.config.get("max_tokens", 1024)),
        timeout=float(context.config.get("sampling_timeout", context.sampling_timeout)),
    )
    if isinstance(generated, Err):
        return generated

    parsed = parse_generated_user(generated.value)
    if isinstance(parsed, Err):
        return parsed

    return await store_user(context, parsed.value)
