"""
JSON file storage for user records.
"""
import json
import logging
from pathlib import Path
from typing import List, Optional, Union

import anyio
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from user_directory.core.errors import MalformedStore, UserNotFound

logger = logging.getLogger(__name__)


class NewUser(BaseModel):
    """User fields supplied at creation time."""
    model_config = ConfigDict(extra="ignore")

    name: str = Field(description="Full name of the user")
    email: str = Field(description="Email address of the user")
    address: str = Field(description="Postal address of the user")
    phone: str = Field(description="Phone number of the user")


class User(NewUser):
    """Stored user record."""
    id: int

    def to_record(self) -> dict:
        """Plain dict with the id first, as written to disk."""
        return {"id": self.id, **self.model_dump(exclude={"id"})}


_users_adapter = TypeAdapter(List[User])


class UserStore:
    """
    Users kept as a single JSON array on disk.

    Every call reads the document fresh. ``append`` rewrites the whole file
    and is not atomic: two concurrent appends that read the same snapshot
    lose one of the records.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = anyio.Path(path)

    async def read_all(self) -> List[User]:
        """Load and validate every user in the document."""
        if not await self.path.exists():
            logger.debug(f"Users file {self.path} does not exist, treating as empty")
            return []

        raw = await self.path.read_text(encoding="utf-8")
        try:
            return _users_adapter.validate_json(raw)
        except ValidationError as e:
            raise MalformedStore(
                f"Users file {self.path} is not a list of users",
                details={"path": str(self.path), "errors": e.error_count()},
            ) from e

    async def get(self, user_id: int) -> Optional[User]:
        """Find a user by id with a linear scan."""
        for user in await self.read_all():
            if user.id == user_id:
                return user
        return None

    async def require(self, user_id: Optional[int]) -> User:
        """Like ``get`` but raises ``UserNotFound``."""
        user = await self.get(user_id) if user_id is not None else None
        if user is None:
            raise UserNotFound(user_id)
        return user

    async def append(self, new_user: NewUser) -> int:
        """Append a user, assigning ``count + 1`` as its id."""
        users = await self.read_all()
        user_id = len(users) + 1
        users.append(User(id=user_id, **new_user.model_dump()))

        await self.path.parent.mkdir(parents=True, exist_ok=True)
        await self.path.write_text(
            json.dumps([u.to_record() for u in users], indent=2),
            encoding="utf-8",
        )
        logger.info(f"Stored user {user_id} in {self.path}")
        return user_id
