"""
Scope model for MCP permissions.

Scopes are a fixed, small vocabulary. Roles held by a user map to sets of scopes; a user
holding several roles gets the union. The tables live in an immutable `ScopeConfig`
built once at startup and shared by reference with every component that needs it.

`mcp:admin` acts as a universal override: a principal holding it satisfies any scope
requirement.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping

SCOPE_READ = "mcp:read"
SCOPE_WRITE = "mcp:write"
SCOPE_DELETE = "mcp:delete"
SCOPE_ADMIN = "mcp:admin"

AVAILABLE_SCOPES: Dict[str, str] = {
    SCOPE_READ: "Read-only access to content, taxonomies, and site info",
    SCOPE_WRITE: "Create and update content and taxonomy terms",
    SCOPE_DELETE: "Delete content and taxonomy terms",
    SCOPE_ADMIN: "Full administrative access including safe mode override",
}

ROLE_SCOPES: Dict[str, List[str]] = {
    "administrator": [SCOPE_ADMIN, SCOPE_DELETE, SCOPE_WRITE, SCOPE_READ],
    "editor": [SCOPE_DELETE, SCOPE_WRITE, SCOPE_READ],
    "author": [SCOPE_WRITE, SCOPE_READ],
    "contributor": [SCOPE_READ],
    "subscriber": [SCOPE_READ],
}


def _freeze_roles(role_scopes: Mapping[str, Iterable[str]]) -> Mapping[str, FrozenSet[str]]:
    return MappingProxyType({role: frozenset(scopes) for role, scopes in role_scopes.items()})


@dataclass(frozen=True)
class ScopeConfig:
    """Immutable scope vocabulary and role mapping."""

    scopes: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType(dict(AVAILABLE_SCOPES))
    )
    role_scopes: Mapping[str, FrozenSet[str]] = field(
        default_factory=lambda: _freeze_roles(ROLE_SCOPES)
    )
    default_scopes: FrozenSet[str] = frozenset({SCOPE_READ})
    admin_scope: str = SCOPE_ADMIN

    @classmethod
    def build(
        cls,
        scopes: Mapping[str, str],
        role_scopes: Mapping[str, Iterable[str]],
        default_scopes: Iterable[str] = (SCOPE_READ,),
        admin_scope: str = SCOPE_ADMIN,
    ) -> "ScopeConfig":
        return cls(
            scopes=MappingProxyType(dict(scopes)),
            role_scopes=_freeze_roles(role_scopes),
            default_scopes=frozenset(default_scopes),
            admin_scope=admin_scope,
        )


DEFAULT_SCOPE_CONFIG = ScopeConfig()


class ScopeModel:
    """Pure scope computations over a `ScopeConfig`. No I/O."""

    def __init__(self, config: ScopeConfig = DEFAULT_SCOPE_CONFIG) -> None:
        self.config = config

    def available_scopes(self) -> Dict[str, str]:
        return dict(self.config.scopes)

    def scopes_for_roles(self, roles: Iterable[str]) -> FrozenSet[str]:
        granted: set[str] = set()
        for role in roles:
            granted.update(self.config.role_scopes.get(role, ()))
        if not granted:
            return self.config.default_scopes
        return frozenset(granted)

    def filter_requested(self, requested: Iterable[str], granted: Iterable[str]) -> List[str]:
        """Intersection of requested and granted scopes, in request order, without duplicates."""
        allowed = set(granted)
        result: List[str] = []
        for scope in requested:
            if scope in allowed and scope not in result:
                result.append(scope)
        return result

    def validate(self, scopes: Iterable[str]) -> bool:
        return all(scope in self.config.scopes for scope in scopes)

    def includes(self, granted: Iterable[str], required: str) -> bool:
        granted = set(granted)
        if self.config.admin_scope in granted:
            return True
        return required in granted

    def parse(self, scope: str) -> List[str]:
        """Split a space-delimited scope parameter, dropping empty members."""
        return [s for s in scope.split(" ") if s]
