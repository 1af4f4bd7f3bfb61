"""
Discovery documents.

- GET /.well-known/oauth-authorization-server (RFC 8414)
- GET /.well-known/oauth-protected-resource (RFC 9728)
- GET /.well-known/jwks.json

Documents are public: they carry `Access-Control-Allow-Origin: *` so browser based
clients can discover the server. When OAuth is disabled each answers 503.
"""

from typing import List

from aiohttp import web
from pydantic import BaseModel

from social.graze.mcpauth.app.config import (
    JwtServiceAppKey,
    ScopeModelAppKey,
    SettingsAppKey,
)
from social.graze.mcpauth.app.handlers.helpers import oauth_error_response
from social.graze.mcpauth.oauth.errors import TemporarilyUnavailable
from social.graze.mcpauth.oauth.grants import SUPPORTED_GRANTS
from social.graze.mcpauth.oauth.pkce import SUPPORTED_METHODS

PUBLIC_HEADERS = {"Access-Control-Allow-Origin": "*"}


class AuthorizationServerMetadata(BaseModel):
    """
    OAuth 2.0 Authorization Server Metadata (RFC 8414).
    """

    issuer: str
    """Issuer identifier, identical to the `iss` claim of issued tokens"""

    authorization_endpoint: str
    """URL of the authorization endpoint"""

    token_endpoint: str
    """URL of the token endpoint"""

    revocation_endpoint: str
    """URL of the revocation endpoint"""

    jwks_uri: str
    """URL of the JWK Set holding the token verification key"""

    scopes_supported: List[str]
    """Every scope a client may request"""

    response_types_supported: List[str] = ["code"]
    """Only the authorization code flow is supported"""

    response_modes_supported: List[str] = ["query"]
    """Codes and errors are returned in the redirect query string"""

    grant_types_supported: List[str] = list(SUPPORTED_GRANTS)
    """authorization_code and refresh_token"""

    token_endpoint_auth_methods_supported: List[str] = ["client_secret_post"]
    """Clients authenticate with form parameters"""

    code_challenge_methods_supported: List[str] = list(SUPPORTED_METHODS)
    """PKCE methods"""


class ProtectedResourceMetadata(BaseModel):
    """
    OAuth 2.0 Protected Resource Metadata (RFC 9728).
    """

    resource: str
    """Resource identifier, the `aud` claim of issued tokens"""

    authorization_servers: List[str]
    """Issuers trusted by this resource"""

    scopes_supported: List[str]
    """Scopes understood by this resource"""

    bearer_methods_supported: List[str] = ["header"]
    """Access tokens are presented in the Authorization header"""


def _disabled() -> web.Response:
    return oauth_error_response(
        TemporarilyUnavailable.oauth_disabled(), headers=PUBLIC_HEADERS
    )


async def handle_authorization_server_metadata(request: web.Request):
    settings = request.app[SettingsAppKey]
    if not settings.oauth_enabled:
        return _disabled()

    issuer = settings.issuer
    metadata = AuthorizationServerMetadata(
        issuer=issuer,
        authorization_endpoint=f"{issuer}/oauth/authorize",
        token_endpoint=f"{issuer}/oauth/token",
        revocation_endpoint=f"{issuer}/oauth/revoke",
        jwks_uri=f"{issuer}/.well-known/jwks.json",
        scopes_supported=list(request.app[ScopeModelAppKey].available_scopes()),
    )
    return web.json_response(metadata.model_dump(), headers=PUBLIC_HEADERS)


async def handle_protected_resource_metadata(request: web.Request):
    settings = request.app[SettingsAppKey]
    if not settings.oauth_enabled:
        return _disabled()

    metadata = ProtectedResourceMetadata(
        resource=settings.audience,
        authorization_servers=[settings.issuer],
        scopes_supported=list(request.app[ScopeModelAppKey].available_scopes()),
    )
    return web.json_response(metadata.model_dump(), headers=PUBLIC_HEADERS)


async def handle_jwks(request: web.Request):
    jwt_service = request.app.get(JwtServiceAppKey)
    if jwt_service is None:
        return _disabled()
    return web.json_response(jwt_service.export_jwks(), headers=PUBLIC_HEADERS)
