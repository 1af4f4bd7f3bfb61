"""
Request authentication.

The `AuthManager` looks at an inbound request's headers and query string and decides
who is calling. Two credential types are accepted:

OAuth access tokens
    An RS256 JWT in `Authorization: Bearer` (or `X-MCP-API-Key`). Only considered when
    OAuth is enabled. A presented JWT that fails validation, or whose `jti` is revoked,
    is a hard rejection; the static token path is never tried as a fallback.

Static user tokens
    An opaque token in the `t` query parameter or in `Authorization: Bearer`. The token
    is hashed and looked up; the owning user's roles are mapped to scopes.

The outcome is a value, not an exception: `Authenticated(principal)` or
`Rejected(reason)`. Callers turn a rejection into a 401 with `www_authenticate()`.
"""

import logging
import re
from dataclasses import dataclass
from typing import FrozenSet, Mapping, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from social.graze.mcpauth.app.metrics import MetricsClient, NoOpMetricsClient
from social.graze.mcpauth.auth.user_tokens import TokenStatus, UserTokenStore
from social.graze.mcpauth.auth.users import UserProvider
from social.graze.mcpauth.oauth.errors import InvalidToken
from social.graze.mcpauth.oauth.jwt import JwtService
from social.graze.mcpauth.oauth.scopes import ScopeModel
from social.graze.mcpauth.oauth.tokens import TokenStore

logger = logging.getLogger(__name__)

AUTH_METHOD_OAUTH = "oauth"
AUTH_METHOD_TOKEN = "token"

AUTHENTICATION_REQUIRED = "Authentication required"
RESOURCE_METADATA_PATH = "/.well-known/oauth-protected-resource"

_BEARER = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


@dataclass(frozen=True)
class Principal:
    user_id: int
    username: str
    roles: FrozenSet[str]
    scopes: FrozenSet[str]
    auth_method: str
    client_id: Optional[str] = None


@dataclass(frozen=True)
class Authenticated:
    principal: Principal


@dataclass(frozen=True)
class Rejected:
    reason: str


AuthResult = Union[Authenticated, Rejected]


def looks_like_jwt(value: str) -> bool:
    """A compact JWS has exactly three non-empty dot separated segments."""
    parts = value.split(".")
    return len(parts) == 3 and all(parts)


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


def _bearer(headers: Mapping[str, str]) -> Optional[str]:
    authorization = _header(headers, "Authorization")
    if authorization is None:
        return None
    match = _BEARER.match(authorization.strip())
    if match is None:
        return None
    return match.group(1).strip() or None


class AuthManager:
    def __init__(
        self,
        tokens: TokenStore,
        user_tokens: UserTokenStore,
        users: UserProvider,
        scope_model: ScopeModel,
        issuer: str,
        jwt_service: Optional[JwtService] = None,
        realm: str = "MCP Server",
        static_token_query_param: str = "t",
        metrics_client: Optional[MetricsClient] = None,
    ) -> None:
        self.tokens = tokens
        self.user_tokens = user_tokens
        self.users = users
        self.scope_model = scope_model
        self.issuer = issuer.rstrip("/")
        self.jwt_service = jwt_service
        self.realm = realm
        self.static_token_query_param = static_token_query_param
        self.metrics_client = metrics_client or NoOpMetricsClient()

    @property
    def oauth_enabled(self) -> bool:
        return self.jwt_service is not None

    @property
    def resource_metadata_url(self) -> str:
        return self.issuer + RESOURCE_METADATA_PATH

    async def authenticate(
        self, headers: Mapping[str, str], query: Mapping[str, str]
    ) -> AuthResult:
        result = await self._authenticate(headers, query)
        if isinstance(result, Authenticated):
            self.metrics_client.increment(
                "mcpauth.auth.authenticated",
                1,
                tag_dict={"method": result.principal.auth_method},
            )
        else:
            self.metrics_client.increment("mcpauth.auth.rejected", 1)
        return result

    async def _authenticate(
        self, headers: Mapping[str, str], query: Mapping[str, str]
    ) -> AuthResult:
        bearer = _bearer(headers)

        if self.jwt_service is not None:
            api_key = _header(headers, "X-MCP-API-Key")
            candidate = bearer or (api_key.strip() if api_key else None)
            if candidate and looks_like_jwt(candidate):
                return await self.authenticate_jwt(candidate)

        static_token = (query.get(self.static_token_query_param) or "").strip() or bearer
        if static_token:
            return await self.authenticate_static_token(static_token)

        return Rejected(AUTHENTICATION_REQUIRED)

    async def authenticate_jwt(self, token: str) -> AuthResult:
        if self.jwt_service is None:
            return Rejected("OAuth is not enabled")

        validation = self.jwt_service.validate(token)
        if validation.claims is None:
            return Rejected(validation.error or "Invalid token")

        claims = validation.claims
        if await self.tokens.is_access_revoked(claims.jti):
            return Rejected("Token has been revoked")

        return Authenticated(
            Principal(
                user_id=claims.user_id,
                username=claims.username,
                roles=frozenset(claims.roles),
                scopes=claims.scopes,
                auth_method=AUTH_METHOD_OAUTH,
                client_id=claims.client_id or None,
            )
        )

    async def authenticate_static_token(self, token: str) -> AuthResult:
        lookup = await self.user_tokens.validate(token)
        if lookup.status is TokenStatus.NOT_FOUND:
            return Rejected("Invalid token")
        if lookup.status is TokenStatus.EXPIRED:
            return Rejected("Token expired")

        if lookup.token is None:
            return Rejected("Invalid token")
        user = await self.users.resolve_user(lookup.token.user_id)
        if user is None:
            return Rejected("User not found")

        try:
            await self.user_tokens.touch(token)
        except SQLAlchemyError:
            logger.warning(
                "unable to record static token use id=%s", lookup.token.id, exc_info=True
            )

        return Authenticated(
            Principal(
                user_id=user.user_id,
                username=user.username,
                roles=frozenset(user.roles),
                scopes=self.scope_model.scopes_for_roles(user.roles),
                auth_method=AUTH_METHOD_TOKEN,
            )
        )

    def www_authenticate(self, reason: str) -> str:
        description = reason.replace('"', "'")
        return (
            f'Bearer realm="{self.realm}", '
            f'resource_metadata="{self.resource_metadata_url}", '
            f'error="{InvalidToken.error}", error_description="{description}"'
        )

    def has_scope(self, principal: Principal, required: str) -> bool:
        return self.scope_model.includes(principal.scopes, required)
