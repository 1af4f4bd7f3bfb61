"""
Shared request helpers for handlers.

Protected resources call `require_principal` or `require_scope`. Authentication
failures surface as 401 with a `WWW-Authenticate` challenge, authorization failures as
403 `insufficient_scope`, so a client can tell "who are you" apart from "you may not".
"""

import json
import logging
from typing import Dict, Optional

from aiohttp import web
import sentry_sdk

from social.graze.mcpauth.app.config import (
    AuthManagerAppKey,
    HealthGaugeAppKey,
    SettingsAppKey,
)
from social.graze.mcpauth.app.cors import get_cors_headers, parse_allowed_domains
from social.graze.mcpauth.auth.manager import (
    AuthManager,
    Authenticated,
    Principal,
)
from social.graze.mcpauth.oauth.errors import InsufficientScope, OAuthError, ServerError

logger = logging.getLogger(__name__)

NO_STORE_HEADERS = {"Cache-Control": "no-store", "Pragma": "no-cache"}


def cors_headers(request: web.Request) -> Dict[str, str]:
    settings = request.app[SettingsAppKey]
    return get_cors_headers(
        request.headers.get("Origin"),
        request.path,
        settings.debug,
        parse_allowed_domains(settings.allowed_domains),
    )


def unauthorized_body(auth_manager: AuthManager, reason: str) -> str:
    return json.dumps(
        {
            "error": "Unauthorized",
            "message": reason,
            "authentication_method": "oauth_or_token"
            if auth_manager.oauth_enabled
            else "token",
        }
    )


def unauthorized(request: web.Request, reason: str) -> web.HTTPUnauthorized:
    auth_manager = request.app[AuthManagerAppKey]
    return web.HTTPUnauthorized(
        body=unauthorized_body(auth_manager, reason),
        content_type="application/json",
        headers={
            "WWW-Authenticate": auth_manager.www_authenticate(reason),
            **cors_headers(request),
        },
    )


async def require_principal(request: web.Request) -> Principal:
    """
    Authenticate the request or raise HTTPUnauthorized with a bearer challenge.
    """
    auth_manager = request.app[AuthManagerAppKey]
    result = await auth_manager.authenticate(request.headers, request.query)
    if isinstance(result, Authenticated):
        return result.principal

    raise unauthorized(request, result.reason)


async def require_scope(request: web.Request, scope: str) -> Principal:
    """
    Authenticate the request and check the principal holds `scope`.

    Raises:
        HTTPUnauthorized: No valid credential.
        HTTPForbidden: Authenticated, but `scope` is not granted.
    """
    principal = await require_principal(request)
    auth_manager = request.app[AuthManagerAppKey]
    if not auth_manager.has_scope(principal, scope):
        error = InsufficientScope(scope)
        raise web.HTTPForbidden(
            body=json.dumps(error.as_dict()),
            content_type="application/json",
            headers=cors_headers(request),
        )
    return principal


def oauth_error_response(
    error: OAuthError, headers: Optional[Dict[str, str]] = None
) -> web.Response:
    return web.json_response(error.as_dict(), status=error.status, headers=headers)


async def server_error(request: web.Request, e: Exception, where: str) -> ServerError:
    """
    Record an unexpected failure and return the generic error reported to the client.
    """
    logger.exception("unexpected error in %s", where)
    sentry_sdk.capture_exception(e)
    await request.app[HealthGaugeAppKey].womp(where)
    return ServerError(cause=e)
