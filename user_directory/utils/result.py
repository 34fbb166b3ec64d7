"""
Explicit success/failure results for capability handlers.

Tool handlers return ``Ok(value)`` or ``Err(reason)`` instead of raising, so
the dispatch layer can always answer with a normal tool result.

Example:
    result = await store_user(store, new_user)
    if isinstance(result, Err):
        return result
    return Ok(f"User {result.value} created successfully")
"""
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful result carrying a value."""
    value: T


@dataclass(frozen=True)
class Err:
    """Failed result carrying a user-facing reason and the underlying error."""
    reason: str
    error: Optional[BaseException] = None


Result = Union[Ok[T], Err]
