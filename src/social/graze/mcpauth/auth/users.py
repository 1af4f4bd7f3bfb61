"""
User and role provider.

The authorization core never owns user accounts. It asks a `UserProvider` whether a
user exists and which roles they hold, and maps those roles onto scopes itself. The
bundled `StaticUserProvider` serves a fixed directory loaded from settings; deployments
backed by another user system supply their own provider.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional, Protocol, Tuple


@dataclass(frozen=True)
class User:
    user_id: int
    username: str
    roles: Tuple[str, ...] = ()


class UserProvider(Protocol):
    async def resolve_user(self, user_id: int) -> Optional[User]: ...


class StaticUserProvider:
    """In-memory user directory."""

    def __init__(self, users: Iterable[User] = ()) -> None:
        self._users: Dict[int, User] = {user.user_id: user for user in users}

    @classmethod
    def from_mapping(cls, data: Mapping[Any, Mapping[str, Any]]) -> "StaticUserProvider":
        """
        Build a directory from a mapping of user id to user attributes.

        Example:

            {"42": {"username": "alice", "roles": ["editor"]}}
        """
        users = []
        for key, value in data.items():
            user_id = int(key)
            users.append(
                User(
                    user_id=user_id,
                    username=str(value.get("username", user_id)),
                    roles=tuple(value.get("roles", ())),
                )
            )
        return cls(users)

    async def resolve_user(self, user_id: int) -> Optional[User]:
        return self._users.get(user_id)

    def __len__(self) -> int:
        return len(self._users)
