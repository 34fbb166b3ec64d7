"""
User resources: the full collection and a single profile.
"""
import logging
import re

from user_directory.core.errors import UserNotFound
from user_directory.utils.capability_decorator import CapabilityContext, mcp_resource

logger = logging.getLogger(__name__)

USER_NOT_FOUND = {"error": "User not found"}

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


@mcp_resource(
    name="users",
    uri="users://all",
    title="Users",
    description="Get all users data from the database",
)
async def all_users(uri: str, context: CapabilityContext):
    """Every stored user."""
    users = await context.store.read_all()
    return [user.to_record() for user in users]


def _parse_user_id(raw: str):
    """Leading integer of ``raw`` ("2.5" and "2abc" both give 2), or None."""
    match = _LEADING_INT.match(raw)
    return int(match.group(1)) if match else None


@mcp_resource(
    name="user-details",
    uri="users://{userId}/profile",
    title="User Details",
    description="Get a user's details from the database",
)
async def user_details(uri: str, context: CapabilityContext, userId: str):
    """One user, or an error payload when no user has that id."""
    try:
        user = await context.store.require(_parse_user_id(userId))
    except UserNotFound:
        logger.info(f"User not found: {userId}")
        return USER_NOT_FOUND
    return user.to_record()
