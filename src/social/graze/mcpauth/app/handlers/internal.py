import dataclasses
import logging

from aiohttp import web

from social.graze.mcpauth.app.config import HealthGaugeAppKey
from social.graze.mcpauth.app.handlers.helpers import cors_headers, require_scope
from social.graze.mcpauth.oauth.scopes import SCOPE_READ

logger = logging.getLogger(__name__)


async def handle_internal_me(request: web.Request):
    """
    Describe the authenticated principal. Requires `mcp:read`.
    """
    principal = await require_scope(request, SCOPE_READ)
    return web.json_response(
        {
            "user_id": principal.user_id,
            "username": principal.username,
            "roles": sorted(principal.roles),
            "scopes": sorted(principal.scopes),
            "client_id": principal.client_id,
            "auth_method": principal.auth_method,
        },
        headers=cors_headers(request),
    )


async def handle_internal_ready(request: web.Request):
    snapshot = await request.app[HealthGaugeAppKey].snapshot()
    return web.json_response(
        dataclasses.asdict(snapshot), status=200 if snapshot.healthy else 503
    )


async def handle_internal_alive(request: web.Request):
    return web.Response(status=200)
