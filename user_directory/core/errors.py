"""Error types for the user directory server.

Transport errors (``SessionNotFound``, ``MalformedMessage``) are mapped to
HTTP statuses by the route handlers. Store and sampling errors never cross
the tool boundary: tool handlers turn them into ``Err`` results.
"""

from typing import Any, Dict, Optional


class UserDirectoryError(Exception):
    """Base class for all user directory errors.

    Attributes:
        message: Error message
        details: Additional error context
        error_type: Error type string (defaults to class name)
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_type: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.error_type = error_type or self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        result = {"type": self.error_type, "message": self.message}
        if self.details:
            result["details"] = self.details
        return result


class SessionNotFound(UserDirectoryError):
    """No live session is mapped to the given session id."""

    def __init__(self, session_id: Optional[str]):
        super().__init__(
            f"Session not found: {session_id}",
            details={"session_id": session_id},
        )
        self.session_id = session_id


class MalformedMessage(UserDirectoryError):
    """A posted body is not a JSON-RPC message."""


class MalformedStore(UserDirectoryError):
    """The users document does not decode to a list of users."""


class UserNotFound(UserDirectoryError):
    """No user has the requested id."""

    def __init__(self, user_id: Any):
        super().__init__(f"User not found: {user_id}", details={"user_id": user_id})
        self.user_id = user_id


class ToolExecutionFailure(UserDirectoryError):
    """Creating or parsing a user failed inside a tool."""


class SamplingError(UserDirectoryError):
    """Base class for failures of the nested sampling round-trip."""


class SamplingUnsupported(SamplingError):
    """The connected client did not declare the sampling capability."""


class SamplingContentMismatch(SamplingError):
    """The client answered the sampling request with non-text content."""


class SamplingTimeout(SamplingError):
    """The client did not answer the sampling request in time."""
