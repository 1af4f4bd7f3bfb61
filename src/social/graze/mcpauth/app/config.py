"""
Configuration Module for the MCP Authorization Service

Settings are loaded from environment variables by pydantic-settings, validated, and
shared with handlers and background tasks through typed `web.AppKey`s. Shared
resources built at startup (database engine, stores, signing service, metrics client)
are published the same way, so handlers never reach for module level globals.

Key configuration areas:
- Networking and CORS
- OAuth issuer identity, signing keys and token lifetimes
- Static token transport
- Database connection
- User directory consumed by the role to scope mapping
- Monitoring (Sentry, StatsD/Telegraf)
"""

import asyncio
import json
import logging
from typing import Annotated, Any, Dict, Final, Optional

from aiohttp import web
from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from social.graze.mcpauth.app.metrics import MetricsClient
from social.graze.mcpauth.auth.manager import AuthManager
from social.graze.mcpauth.auth.user_tokens import UserTokenStore
from social.graze.mcpauth.auth.users import StaticUserProvider, UserProvider
from social.graze.mcpauth.model.health import HealthGauge
from social.graze.mcpauth.oauth.clients import ClientStore
from social.graze.mcpauth.oauth.codes import CodeStore
from social.graze.mcpauth.oauth.grants import GrantService
from social.graze.mcpauth.oauth.jwt import JwtService
from social.graze.mcpauth.oauth.scopes import ScopeConfig, ScopeModel
from social.graze.mcpauth.oauth.tokens import TokenStore

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application settings for the MCP authorization service.

    Values come from environment variables, with defaults suitable for development.
    OAuth is off unless explicitly enabled; when it is on, both PEM key paths must
    point at readable files or startup fails.
    """

    debug: bool = False
    """
    Enable debug mode for verbose logging and development features.
    Set with DEBUG=true environment variable.
    """

    allowed_domains: str = "http://localhost:3000"
    """
    Comma-separated list of origins allowed for CORS on protected resources.
    Set with ALLOWED_DOMAINS environment variable.
    """

    http_port: int = Field(alias="port", default=5100)
    """
    HTTP port for the service to listen on.
    Set with PORT environment variable.
    """

    oauth_enabled: bool = False
    """
    Enable the OAuth 2.1 authorization server and JWT access tokens.
    Set with OAUTH_ENABLED=true environment variable.
    """

    issuer: str = "http://localhost:5100"
    """
    Issuer URL placed in the `iss` claim and used to build metadata URLs.
    Set with ISSUER environment variable.
    """

    resource_identifier: Optional[str] = None
    """
    Audience placed in the `aud` claim. Defaults to the issuer.
    Set with RESOURCE_IDENTIFIER environment variable.
    """

    auth_realm: str = "MCP Server"
    """Realm advertised in WWW-Authenticate challenges."""

    private_key_path: Optional[str] = None
    """
    Path to the PEM encoded RSA private key used to sign access tokens.
    Set with PRIVATE_KEY_PATH environment variable.
    """

    public_key_path: Optional[str] = None
    """
    Path to the PEM encoded RSA public key used to verify access tokens.
    Set with PUBLIC_KEY_PATH environment variable.
    """

    access_token_ttl: int = 3600
    """Access token lifetime in seconds. Default: 3600 (1 hour)"""

    refresh_token_ttl: int = 2592000
    """Refresh token lifetime in seconds. Default: 2592000 (30 days)"""

    authorization_code_ttl: int = 600
    """Authorization code lifetime in seconds. Default: 600 (10 minutes)"""

    jwt_leeway: int = 60
    """Clock skew tolerance in seconds for `nbf` and `exp` checks."""

    client_secret_rounds: int = 12
    """bcrypt cost factor for client secret hashing."""

    static_token_query_param: str = "t"
    """Query parameter that may carry a static user token."""

    database_url: str = Field(
        "postgresql+asyncpg://postgres:password@db/mcpauth",
        validation_alias=AliasChoices("database_url", "pg_dsn"),
    )
    """
    SQLAlchemy async database URL.
    Set with DATABASE_URL or PG_DSN environment variables.
    """

    users: Annotated[Dict[str, Dict[str, Any]], NoDecode] = Field(default_factory=dict)
    """
    User directory: a mapping of user id to {"username": ..., "roles": [...]}, or a
    path to a JSON file containing one.
    Set with USERS environment variable.
    """

    cleanup_interval: int = 3600
    """Seconds between sweeps that delete expired codes and tokens."""

    sentry_dsn: Optional[str] = None
    """
    Sentry DSN for error reporting. Optional, no error reporting if not set.
    Set with SENTRY_DSN environment variable.
    """

    metrics_backend: str = "none"
    """
    Metrics backend, `telegraf` or `none`.
    Set with METRICS_BACKEND environment variable.
    """

    statsd_host: str = Field(alias="TELEGRAF_HOST", default="telegraf")
    """
    StatsD/Telegraf host for metrics collection.
    Set with TELEGRAF_HOST environment variable.
    """

    statsd_port: int = Field(alias="TELEGRAF_PORT", default=8125)
    """
    StatsD/Telegraf port for metrics collection.
    Set with TELEGRAF_PORT environment variable.
    """

    @property
    def audience(self) -> str:
        return self.resource_identifier or self.issuer

    @field_validator("issuer", mode="after")
    @classmethod
    def strip_issuer(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("users", mode="before")
    @classmethod
    def decode_users(cls, v) -> Dict[str, Dict[str, Any]]:
        """
        Accept the user directory as a mapping, a JSON document, or a path to a JSON file.
        """
        if isinstance(v, dict):
            return v
        elif isinstance(v, str):
            value = v.strip()
            if not value:
                return {}
            if value.startswith("{"):
                return json.loads(value)
            with open(value) as fd:
                return json.load(fd)
        raise ValueError("users must be a mapping or a path to a JSON file")

    @model_validator(mode="after")
    def require_keys_with_oauth(self) -> "Settings":
        if self.oauth_enabled and not (self.private_key_path and self.public_key_path):
            raise ValueError(
                "private_key_path and public_key_path are required when oauth_enabled"
            )
        return self

    def user_provider(self) -> UserProvider:
        return StaticUserProvider.from_mapping(self.users)


# Application context keys for dependency injection
SettingsAppKey: Final = web.AppKey("settings", Settings)
"""AppKey for accessing the application settings"""

ScopeConfigAppKey: Final = web.AppKey("scope_config", ScopeConfig)
"""AppKey for the immutable scope vocabulary and role mapping"""

ScopeModelAppKey: Final = web.AppKey("scope_model", ScopeModel)
"""AppKey for scope computations over the configured vocabulary"""

UserProviderAppKey: Final = web.AppKey("user_provider", UserProvider)
"""AppKey for the user and role provider"""

DatabaseAppKey: Final = web.AppKey("database", AsyncEngine)
"""AppKey for accessing the SQLAlchemy async database engine"""

DatabaseSessionMakerAppKey: Final = web.AppKey(
    "database_session_maker", async_sessionmaker[AsyncSession]
)
"""AppKey for accessing the SQLAlchemy async session factory"""

ClientStoreAppKey: Final = web.AppKey("client_store", ClientStore)
"""AppKey for the registered client store"""

CodeStoreAppKey: Final = web.AppKey("code_store", CodeStore)
"""AppKey for the authorization code store"""

TokenStoreAppKey: Final = web.AppKey("token_store", TokenStore)
"""AppKey for the access ledger and refresh token store"""

UserTokenStoreAppKey: Final = web.AppKey("user_token_store", UserTokenStore)
"""AppKey for the static user token store"""

JwtServiceAppKey: Final = web.AppKey("jwt_service", JwtService)
"""AppKey for the signing service. Only present when OAuth is enabled."""

GrantServiceAppKey: Final = web.AppKey("grant_service", GrantService)
"""AppKey for the grant flows. Only present when OAuth is enabled."""

AuthManagerAppKey: Final = web.AppKey("auth_manager", AuthManager)
"""AppKey for request authentication"""

HealthGaugeAppKey: Final = web.AppKey("health_gauge", HealthGauge)
"""AppKey for accessing the health monitoring gauge"""

TickHealthTaskAppKey: Final = web.AppKey("tick_health_task", asyncio.Task[None])
"""AppKey for the background task that monitors service health"""

CleanupTaskAppKey: Final = web.AppKey("cleanup_task", asyncio.Task[None])
"""AppKey for the background task that deletes expired codes and tokens"""

MetricsClientAppKey: Final = web.AppKey("metrics_client", MetricsClient)
"""AppKey for the metrics client abstraction"""
