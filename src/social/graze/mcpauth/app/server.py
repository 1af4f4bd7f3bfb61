import asyncio
import contextlib
import logging
from time import time
from typing import Optional

from aiohttp import web
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    async_sessionmaker,
    AsyncSession,
)
import sentry_sdk
from sentry_sdk.integrations.aiohttp import AioHttpIntegration

from social.graze.mcpauth.app.config import (
    AuthManagerAppKey,
    CleanupTaskAppKey,
    ClientStoreAppKey,
    CodeStoreAppKey,
    DatabaseAppKey,
    DatabaseSessionMakerAppKey,
    GrantServiceAppKey,
    HealthGaugeAppKey,
    JwtServiceAppKey,
    MetricsClientAppKey,
    ScopeConfigAppKey,
    ScopeModelAppKey,
    Settings,
    SettingsAppKey,
    TickHealthTaskAppKey,
    TokenStoreAppKey,
    UserProviderAppKey,
    UserTokenStoreAppKey,
)
from social.graze.mcpauth.app.handlers.internal import (
    handle_internal_alive,
    handle_internal_me,
    handle_internal_ready,
)
from social.graze.mcpauth.app.handlers.oauth import (
    handle_authorize,
    handle_revoke,
    handle_token,
)
from social.graze.mcpauth.app.handlers.well_known import (
    handle_authorization_server_metadata,
    handle_jwks,
    handle_protected_resource_metadata,
)
from social.graze.mcpauth.app.metrics import create_metrics_client
from social.graze.mcpauth.app.tasks import cleanup_task, tick_health_task
from social.graze.mcpauth.auth.manager import AuthManager
from social.graze.mcpauth.auth.user_tokens import UserTokenStore
from social.graze.mcpauth.model.health import HealthGauge
from social.graze.mcpauth.oauth.clients import ClientStore
from social.graze.mcpauth.oauth.codes import CodeStore
from social.graze.mcpauth.oauth.errors import KeyLoadError
from social.graze.mcpauth.oauth.grants import GrantService
from social.graze.mcpauth.oauth.jwt import JwtService
from social.graze.mcpauth.oauth.scopes import DEFAULT_SCOPE_CONFIG, ScopeConfig, ScopeModel
from social.graze.mcpauth.oauth.tokens import TokenStore

logger = logging.getLogger(__name__)


async def background_tasks(app):
    logger.info("Starting up")
    settings: Settings = app[SettingsAppKey]

    engine = create_async_engine(settings.database_url)
    app[DatabaseAppKey] = engine
    database_session = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )
    app[DatabaseSessionMakerAppKey] = database_session

    metrics_client = create_metrics_client(
        settings.metrics_backend,
        host=settings.statsd_host,
        port=settings.statsd_port,
        debug=settings.debug,
    )
    await metrics_client.connect()
    app[MetricsClientAppKey] = metrics_client

    scope_model = app[ScopeModelAppKey]
    users = app[UserProviderAppKey]

    app[ClientStoreAppKey] = ClientStore(
        database_session, secret_rounds=settings.client_secret_rounds
    )
    app[CodeStoreAppKey] = CodeStore(database_session)
    app[TokenStoreAppKey] = TokenStore(database_session)
    app[UserTokenStoreAppKey] = UserTokenStore(database_session)

    jwt_service: Optional[JwtService] = None
    if settings.oauth_enabled:
        if settings.private_key_path is None or settings.public_key_path is None:
            raise KeyLoadError("private_key_path and public_key_path are required")
        # KeyLoadError here aborts startup.
        jwt_service = JwtService.from_files(
            settings.private_key_path,
            settings.public_key_path,
            settings.issuer,
            settings.audience,
            leeway=settings.jwt_leeway,
        )
        app[JwtServiceAppKey] = jwt_service
        app[GrantServiceAppKey] = GrantService(
            app[ClientStoreAppKey],
            app[CodeStoreAppKey],
            app[TokenStoreAppKey],
            jwt_service,
            scope_model,
            users,
            access_token_ttl=settings.access_token_ttl,
            refresh_token_ttl=settings.refresh_token_ttl,
            authorization_code_ttl=settings.authorization_code_ttl,
            metrics_client=metrics_client,
        )

    app[AuthManagerAppKey] = AuthManager(
        app[TokenStoreAppKey],
        app[UserTokenStoreAppKey],
        users,
        scope_model,
        settings.issuer,
        jwt_service=jwt_service,
        realm=settings.auth_realm,
        static_token_query_param=settings.static_token_query_param,
        metrics_client=metrics_client,
    )

    logger.info("Startup complete oauth_enabled=%s", settings.oauth_enabled)

    app[TickHealthTaskAppKey] = asyncio.create_task(tick_health_task(app))
    app[CleanupTaskAppKey] = asyncio.create_task(cleanup_task(app))

    yield

    logger.info("Shutting down background tasks")

    app[TickHealthTaskAppKey].cancel()
    app[CleanupTaskAppKey].cancel()

    with contextlib.suppress(asyncio.exceptions.CancelledError):
        await app[TickHealthTaskAppKey]

    with contextlib.suppress(asyncio.exceptions.CancelledError):
        await app[CleanupTaskAppKey]

    await app[DatabaseAppKey].dispose()
    await app[MetricsClientAppKey].close()


@web.middleware
async def sentry_middleware(request: web.Request, handler):
    try:
        response = await handler(request)
        return response
    except web.HTTPException:
        raise
    except Exception as e:
        sentry_sdk.capture_exception(e)
        await request.app[HealthGaugeAppKey].womp(request.path)
        raise e


@web.middleware
async def statsd_middleware(request: web.Request, handler):
    metrics_client = request.app[MetricsClientAppKey]
    request_method: str = request.method
    request_path = request.path

    start_time: float = time()
    response_status_code = 0

    try:
        response = await handler(request)
        response_status_code = response.status
        return response
    except web.HTTPException as e:
        response_status_code = e.status
        raise e
    except Exception as e:
        metrics_client.increment(
            "mcpauth.server.request.exception",
            1,
            tag_dict={
                "exception": type(e).__name__,
                "path": request_path,
                "method": request_method,
            },
        )
        raise e
    finally:
        metrics_client.timer(
            "mcpauth.server.request.time",
            time() - start_time,
            tag_dict={"path": request_path, "method": request_method},
        )
        metrics_client.increment(
            "mcpauth.server.request.count",
            1,
            tag_dict={
                "path": request_path,
                "method": request_method,
                "status": response_status_code,
            },
        )


async def start_web_server(
    settings: Optional[Settings] = None,
    scope_config: ScopeConfig = DEFAULT_SCOPE_CONFIG,
):

    if settings is None:
        settings = Settings()  # type: ignore
    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            send_default_pii=False,
            integrations=[AioHttpIntegration()]
        )
    app = web.Application(middlewares=[statsd_middleware, sentry_middleware])

    app[SettingsAppKey] = settings
    app[HealthGaugeAppKey] = HealthGauge()
    app[ScopeConfigAppKey] = scope_config
    app[ScopeModelAppKey] = ScopeModel(scope_config)
    app[UserProviderAppKey] = settings.user_provider()

    app.add_routes(
        [
            web.get(
                "/.well-known/oauth-authorization-server",
                handle_authorization_server_metadata,
            ),
            web.get(
                "/.well-known/oauth-protected-resource",
                handle_protected_resource_metadata,
            ),
            web.get("/.well-known/jwks.json", handle_jwks),
        ]
    )

    app.add_routes(
        [
            web.get("/oauth/authorize", handle_authorize),
            web.post("/oauth/authorize", handle_authorize),
            web.post("/oauth/token", handle_token),
            web.post("/oauth/revoke", handle_revoke),
        ]
    )

    app.add_routes(
        [
            web.get("/internal/alive", handle_internal_alive),
            web.get("/internal/ready", handle_internal_ready),
            web.get("/internal/api/me", handle_internal_me),
        ]
    )

    app.cleanup_ctx.append(background_tasks)

    return app
