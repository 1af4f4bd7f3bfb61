"""
OAuth 2.1 Authorization Server Handlers

This module implements the HTTP surface of the authorization server:

- GET  /oauth/authorize - Validate an authorization request and describe the consent
  decision (client, user, requested scopes and which of them can be granted)
- POST /oauth/authorize - Record the user's decision (`action=approve` or `action=deny`)
  and redirect back to the client with a code or an error
- POST /oauth/token     - authorization_code and refresh_token grants
- POST /oauth/revoke    - Token revocation (RFC 7009)

Authorization Code Flow:
1. The client sends the user agent to /oauth/authorize with client_id, redirect_uri,
   response_type=code, scope, state and optionally a PKCE challenge
2. The resource owner is identified by their own static user token; access tokens
   issued to clients are refused here
3. On approval the requested scopes are narrowed to what the user's roles allow, a
   single use code is issued and the user agent is redirected to the client
4. The client exchanges the code at /oauth/token for an access JWT and refresh token
5. Refresh tokens are rotated on every use

All endpoints answer 503 with a `server_error` document when OAuth is disabled.
"""

import logging
from typing import Any, Dict, Mapping, Optional

from aiohttp import web

from social.graze.mcpauth.app.config import (
    GrantServiceAppKey,
    ScopeModelAppKey,
    UserProviderAppKey,
)
from social.graze.mcpauth.app.handlers.helpers import (
    NO_STORE_HEADERS,
    oauth_error_response,
    require_principal,
    server_error,
    unauthorized,
)
from social.graze.mcpauth.auth.manager import AUTH_METHOD_TOKEN
from social.graze.mcpauth.auth.users import User
from social.graze.mcpauth.oauth.errors import (
    InvalidRequest,
    OAuthError,
    TemporarilyUnavailable,
)
from social.graze.mcpauth.oauth.grants import (
    AuthorizationRedirectError,
    AuthorizationRequest,
    GrantService,
    InvalidAuthorizationRequest,
    error_redirect,
)

logger = logging.getLogger(__name__)


def _grant_service(request: web.Request) -> Optional[GrantService]:
    return request.app.get(GrantServiceAppKey)


def _form_params(form: Mapping[str, Any]) -> Dict[str, str]:
    return {key: value for key, value in form.items() if isinstance(value, str)}


async def _resource_owner(request: web.Request) -> User:
    principal = await require_principal(request)
    # Access tokens act for a client; consent needs the user's own credential.
    if principal.auth_method != AUTH_METHOD_TOKEN:
        raise unauthorized(request, "A user token is required to authorize clients")
    user = await request.app[UserProviderAppKey].resolve_user(principal.user_id)
    if user is not None:
        return user
    return User(
        user_id=principal.user_id,
        username=principal.username,
        roles=tuple(sorted(principal.roles)),
    )


def consent_document(
    request: web.Request, authorization: AuthorizationRequest, user: User
) -> Dict[str, Any]:
    grants = request.app[GrantServiceAppKey]
    available = request.app[ScopeModelAppKey].available_scopes()
    grantable = set(grants.grantable_scopes(authorization, user))
    return {
        "client": {
            "client_id": authorization.client.client_id,
            "name": authorization.client.name,
        },
        "user": {"user_id": user.user_id, "username": user.username},
        "redirect_uri": authorization.redirect_uri,
        "state": authorization.state,
        "scopes": [
            {
                "scope": scope,
                "description": available.get(scope, ""),
                "grantable": scope in grantable,
            }
            for scope in authorization.scopes
        ],
        "code_challenge_method": authorization.code_challenge_method
        if authorization.code_challenge
        else None,
    }


async def handle_authorize(request: web.Request):
    """
    Handle GET and POST requests to the authorization endpoint.

    Query Parameters:
        client_id, redirect_uri, response_type, state, scope, code_challenge,
        code_challenge_method

    Form Parameters (POST):
        action: `approve` or `deny`

    Returns:
        GET: consent document as JSON
        POST: HTTP redirect to the client's redirect_uri

    Errors with client_id, response_type or redirect_uri are answered with a 400
    directly; the redirect URI is not trusted until it has been matched exactly.
    """
    grants = _grant_service(request)
    if grants is None:
        return oauth_error_response(TemporarilyUnavailable.oauth_disabled())

    params = dict(request.query)
    form: Dict[str, str] = {}
    if request.method == "POST":
        form = _form_params(await request.post())

    try:
        authorization = await grants.validate_authorization_request(params)
    except InvalidAuthorizationRequest as e:
        return oauth_error_response(InvalidRequest(e.description))
    except AuthorizationRedirectError as e:
        raise web.HTTPFound(e.location)

    user = await _resource_owner(request)

    if request.method != "POST":
        return web.json_response(
            consent_document(request, authorization, user), headers=NO_STORE_HEADERS
        )

    action = form.get("action", "")
    try:
        if action == "approve":
            location = await grants.approve(authorization, user)
        elif action == "deny":
            location = grants.deny(authorization)
        else:
            return oauth_error_response(InvalidRequest.missing("action"))
    except AuthorizationRedirectError as e:
        raise web.HTTPFound(e.location)
    except Exception as e:
        error = await server_error(request, e, "handle_authorize")
        raise web.HTTPFound(
            error_redirect(authorization.redirect_uri, error, authorization.state)
        )

    logger.info(
        "authorization %s client_id=%s user_id=%s",
        action,
        authorization.client.client_id,
        user.user_id,
    )
    raise web.HTTPFound(location)


async def handle_token(request: web.Request):
    """
    Handle POST requests to the token endpoint.

    Form Parameters:
        grant_type: `authorization_code` or `refresh_token`
        client_id, client_secret: client credentials (client_secret_post)
        code, redirect_uri, code_verifier: authorization_code grant
        refresh_token: refresh_token grant

    Returns:
        JSON token response, or an `{error, error_description}` document with the
        status of the OAuth error. Responses are never cacheable.
    """
    grants = _grant_service(request)
    if grants is None:
        return oauth_error_response(
            TemporarilyUnavailable.oauth_disabled(), headers=NO_STORE_HEADERS
        )

    params = _form_params(await request.post())

    try:
        response = await grants.token(params)
    except OAuthError as e:
        return oauth_error_response(e, headers=NO_STORE_HEADERS)
    except Exception as e:
        error = await server_error(request, e, "handle_token")
        return oauth_error_response(error, headers=NO_STORE_HEADERS)

    return web.json_response(response.model_dump(), headers=NO_STORE_HEADERS)


async def handle_revoke(request: web.Request):
    """
    Handle POST requests to the revocation endpoint.

    Form Parameters:
        client_id, client_secret: client credentials
        token: refresh token or access JWT to revoke
        token_type_hint: accepted and ignored

    Returns 200 for unknown tokens as well as revoked ones.
    """
    grants = _grant_service(request)
    if grants is None:
        return oauth_error_response(
            TemporarilyUnavailable.oauth_disabled(), headers=NO_STORE_HEADERS
        )

    params = _form_params(await request.post())

    try:
        await grants.revoke(
            params.get("client_id", ""),
            params.get("client_secret", ""),
            params.get("token", ""),
        )
    except OAuthError as e:
        return oauth_error_response(e, headers=NO_STORE_HEADERS)
    except Exception as e:
        error = await server_error(request, e, "handle_revoke")
        return oauth_error_response(error, headers=NO_STORE_HEADERS)

    return web.Response(status=200, headers=NO_STORE_HEADERS)
