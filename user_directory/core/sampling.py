"""
Nested sampling requests sent back to the connected client.

The request travels on the caller's own session; the SDK session correlates
the reply by JSON-RPC request id. The wait is bounded by a timeout since the
protocol itself defines none.
"""
import json
import logging
import re

import anyio
from mcp import types as mcp_types
from mcp.shared.exceptions import McpError
from pydantic import ValidationError

from user_directory.core.errors import (
    SamplingContentMismatch,
    SamplingTimeout,
    SamplingUnsupported,
    ToolExecutionFailure,
)
from user_directory.core.store import NewUser
from user_directory.utils.result import Err, Ok, Result

logger = logging.getLogger(__name__)

# ```json ... ``` or bare ``` ... ```
_FENCE_OPEN = re.compile(r"^```[\w+-]*[ \t]*\n?")
_FENCE_CLOSE = re.compile(r"\n?```$")

_SAMPLING_CAPABILITY = mcp_types.ClientCapabilities(sampling=mcp_types.SamplingCapability())


def strip_code_fence(text: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    text = text.strip()
    text = _FENCE_OPEN.sub("", text)
    text = _FENCE_CLOSE.sub("", text)
    return text.strip()


def parse_generated_user(text: str) -> Result[NewUser]:
    """Parse the agent's reply into user fields."""
    try:
        data = json.loads(strip_code_fence(text))
        return Ok(NewUser.model_validate(data))
    except (json.JSONDecodeError, ValidationError) as e:
        failure = ToolExecutionFailure(
            "Generated user data is not a valid user object",
            details={"reply": text[:200]},
        )
        failure.__cause__ = e
        return Err("Failed to generate user data", failure)


async def request_text(session, prompt: str, max_tokens: int, timeout: float) -> Result[str]:
    """
    Ask the client to generate text for ``prompt``.

    Args:
        session: ServerSession of the calling client
        prompt: User message sent to the client's model
        max_tokens: Upper bound on generated tokens
        timeout: Seconds to wait for the reply

    Returns:
        Ok with the generated text, or Err describing why none is available
    """
    failure = "Failed to generate user data"

    if session is None or not session.check_client_capability(_SAMPLING_CAPABILITY):
        logger.warning("Client does not support sampling")
        return Err(failure, SamplingUnsupported("Client did not declare the sampling capability"))

    logger.debug(f"Sending sampling request (max_tokens={max_tokens}, timeout={timeout}s)")
    try:
        with anyio.fail_after(timeout):
            response = await session.create_message(
                messages=[
                    mcp_types.SamplingMessage(
                        role="user",
                        content=mcp_types.TextContent(type="text", text=prompt),
                    )
                ],
                max_tokens=max_tokens,
            )
    except TimeoutError:
        logger.warning(f"Sampling request timed out after {timeout}s")
        return Err(failure, SamplingTimeout(
            f"No sampling reply within {timeout}s", details={"timeout": timeout}
        ))
    except McpError as e:
        logger.warning(f"Client rejected sampling request: {e.error.message}")
        return Err(failure, e)
    except ValidationError as e:
        logger.warning(f"Sampling reply is not a valid result: {e.error_count()} error(s)")
        malformed = ToolExecutionFailure("Sampling reply is not a valid result")
        malformed.__cause__ = e
        return Err(failure, malformed)
    except (anyio.ClosedResourceError, anyio.BrokenResourceError) as e:
        logger.warning("Session closed while waiting for a sampling reply")
        closed = ToolExecutionFailure("Session closed during sampling")
        closed.__cause__ = e
        return Err(failure, closed)

    content = response.content
    if not isinstance(content, mcp_types.TextContent):
        logger.warning(f"Sampling reply has {getattr(content, 'type', type(content).__name__)} content, expected text")
        return Err(failure, SamplingContentMismatch(
            "Sampling reply is not text",
            details={"content_type": getattr(content, "type", None)},
        ))

    return Ok(content.text)
