"""
OAuth 2.1 grant flows.

This module wires the client, code and token stores, PKCE verification and the JWT
service into the two supported grants and the authorization request that precedes
them.

Authorization code grant (token endpoint):

1. Authenticate the client (`invalid_client`).
2. Redeem the code. Redemption is atomic and is the only mutation: from here on the
   code is spent whether or not the remaining checks pass (`invalid_grant`).
3. The code must have been issued to this client, for this exact redirect URI.
4. When the code carries a PKCE challenge the verifier is required
   (`invalid_request`) and must match (`invalid_grant`).
5. Mint a new `jti`, sign the access JWT and store the ledger row and the paired refresh
   token in one transaction.

Refresh token grant:

1. Authenticate the client.
2. The refresh token must be valid and issued to this client.
3. Rotate: the old refresh token and the access token it was paired with are revoked
   and a new pair with the same user and scopes is issued, in one transaction.

Authorization requests (authorization endpoint) are validated in two tiers. Problems
with the client or redirect URI are answered directly, because the redirect URI cannot
be trusted yet. Everything after that is reported to the client through an error
redirect.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Mapping, Optional
from urllib.parse import urlencode

from pydantic import BaseModel
from ulid import ULID

from social.graze.mcpauth.app.metrics import MetricsClient, NoOpMetricsClient
from social.graze.mcpauth.auth.users import User, UserProvider
from social.graze.mcpauth.model.oauth import OAuthClient
from social.graze.mcpauth.oauth.clients import ClientStore
from social.graze.mcpauth.oauth.codes import CodeStore
from social.graze.mcpauth.oauth.errors import (
    AccessDenied,
    InvalidClient,
    InvalidGrant,
    InvalidRequest,
    InvalidScope,
    OAuthError,
    UnsupportedGrantType,
)
from social.graze.mcpauth.oauth.jwt import JwtService
from social.graze.mcpauth.oauth.pkce import METHOD_S256, SUPPORTED_METHODS, verify_pkce
from social.graze.mcpauth.oauth.scopes import ScopeModel
from social.graze.mcpauth.oauth.tokens import TokenStore

logger = logging.getLogger(__name__)

GRANT_AUTHORIZATION_CODE = "authorization_code"
GRANT_REFRESH_TOKEN = "refresh_token"
SUPPORTED_GRANTS = (GRANT_AUTHORIZATION_CODE, GRANT_REFRESH_TOKEN)


def new_jti() -> str:
    return str(ULID())


class TokenResponse(BaseModel):
    """
    Successful token endpoint response (RFC 6749 section 5.1).
    """

    access_token: str
    """Signed RS256 access JWT"""

    token_type: str = "Bearer"
    """Always Bearer"""

    expires_in: int
    """Access token lifetime in seconds"""

    refresh_token: str
    """Opaque single-use refresh token"""

    scope: str
    """Space-delimited granted scopes"""


@dataclass(frozen=True)
class AuthorizationRequest:
    """A validated authorization request, ready to be shown for consent."""

    client: OAuthClient
    redirect_uri: str
    state: str
    scopes: List[str]
    code_challenge: Optional[str]
    code_challenge_method: str


class InvalidAuthorizationRequest(Exception):
    """
    An authorization request that must not be redirected.

    Raised when the client or redirect URI cannot be trusted; the error is returned to
    the user agent directly instead of to the client.
    """

    def __init__(self, description: str) -> None:
        super().__init__(description)
        self.description = description


class AuthorizationRedirectError(Exception):
    """An OAuth error to be delivered to the client by redirect."""

    def __init__(self, redirect_uri: str, error: OAuthError, state: str = "") -> None:
        super().__init__(error.description)
        self.error = error
        self.location = error_redirect(redirect_uri, error, state)


def build_redirect(redirect_uri: str, params: Mapping[str, str]) -> str:
    separator = "&" if "?" in redirect_uri else "?"
    return redirect_uri + separator + urlencode(params)


def error_redirect(redirect_uri: str, error: OAuthError, state: str = "") -> str:
    params = {"error": error.error, "error_description": error.description}
    if state:
        params["state"] = state
    return build_redirect(redirect_uri, params)


class GrantService:
    def __init__(
        self,
        clients: ClientStore,
        codes: CodeStore,
        tokens: TokenStore,
        jwt_service: JwtService,
        scope_model: ScopeModel,
        users: UserProvider,
        access_token_ttl: int = 3600,
        refresh_token_ttl: int = 2592000,
        authorization_code_ttl: int = 600,
        metrics_client: Optional[MetricsClient] = None,
    ) -> None:
        self.clients = clients
        self.codes = codes
        self.tokens = tokens
        self.jwt_service = jwt_service
        self.scope_model = scope_model
        self.users = users
        self.access_token_ttl = access_token_ttl
        self.refresh_token_ttl = refresh_token_ttl
        self.authorization_code_ttl = authorization_code_ttl
        self.metrics_client = metrics_client or NoOpMetricsClient()

    async def authenticate_client(self, client_id: str, client_secret: str) -> None:
        if not client_id or not client_secret:
            raise InvalidClient.missing_credentials()
        if not await self.clients.verify_credentials(client_id, client_secret):
            self.metrics_client.increment(
                "mcpauth.oauth.client_auth.failed", 1, tag_dict={"client_id": client_id}
            )
            raise InvalidClient.bad_credentials()

    async def validate_authorization_request(
        self, params: Mapping[str, str]
    ) -> AuthorizationRequest:
        client_id = params.get("client_id", "")
        redirect_uri = params.get("redirect_uri", "")
        state = params.get("state", "")

        if not client_id:
            raise InvalidAuthorizationRequest("Missing client_id parameter")
        if params.get("response_type", "") != "code":
            raise InvalidAuthorizationRequest(
                'Unsupported response_type. Only "code" is supported.'
            )
        client = await self.clients.get(client_id)
        if client is None:
            raise InvalidAuthorizationRequest("Invalid client_id")
        if not redirect_uri:
            raise InvalidAuthorizationRequest("Missing redirect_uri parameter")
        if redirect_uri not in client.redirect_uris:
            raise InvalidAuthorizationRequest("Invalid redirect_uri")

        scope = params.get("scope", "").strip()
        if scope:
            requested = self.scope_model.parse(scope)
        else:
            requested = sorted(self.scope_model.config.default_scopes)
        if not self.scope_model.validate(requested):
            raise AuthorizationRedirectError(
                redirect_uri,
                InvalidScope("One or more requested scopes are invalid"),
                state,
            )

        code_challenge = params.get("code_challenge", "") or None
        code_challenge_method = params.get("code_challenge_method", "") or METHOD_S256
        if code_challenge_method not in SUPPORTED_METHODS:
            raise AuthorizationRedirectError(
                redirect_uri,
                InvalidRequest("Unsupported code_challenge_method"),
                state,
            )

        return AuthorizationRequest(
            client=client,
            redirect_uri=redirect_uri,
            state=state,
            scopes=requested,
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
        )

    def grantable_scopes(self, request: AuthorizationRequest, user: User) -> List[str]:
        granted = self.scope_model.scopes_for_roles(user.roles)
        return self.scope_model.filter_requested(request.scopes, granted)

    async def approve(self, request: AuthorizationRequest, user: User) -> str:
        """Issue an authorization code for the consenting user and return the redirect."""
        scopes = self.grantable_scopes(request, user)
        if not scopes:
            raise AuthorizationRedirectError(
                request.redirect_uri, AccessDenied.no_grantable_scopes(), request.state
            )

        code = await self.codes.issue(
            request.client.client_id,
            user.user_id,
            request.redirect_uri,
            scopes,
            request.code_challenge,
            request.code_challenge_method,
            self.authorization_code_ttl,
        )
        self.metrics_client.increment(
            "mcpauth.oauth.authorize.approved",
            1,
            tag_dict={"client_id": request.client.client_id},
        )

        params = {"code": code}
        if request.state:
            params["state"] = request.state
        return build_redirect(request.redirect_uri, params)

    def deny(self, request: AuthorizationRequest) -> str:
        self.metrics_client.increment(
            "mcpauth.oauth.authorize.denied",
            1,
            tag_dict={"client_id": request.client.client_id},
        )
        return error_redirect(
            request.redirect_uri, AccessDenied.user_denied(), request.state
        )

    async def token(self, params: Mapping[str, str]) -> TokenResponse:
        """Token endpoint dispatch. Client authentication precedes grant selection."""
        client_id = params.get("client_id", "")
        client_secret = params.get("client_secret", "")
        grant_type = params.get("grant_type", "")

        await self.authenticate_client(client_id, client_secret)

        try:
            if grant_type == GRANT_AUTHORIZATION_CODE:
                response = await self.exchange_authorization_code(
                    client_id,
                    params.get("code", ""),
                    params.get("redirect_uri", ""),
                    params.get("code_verifier", ""),
                )
            elif grant_type == GRANT_REFRESH_TOKEN:
                response = await self.refresh(client_id, params.get("refresh_token", ""))
            else:
                raise UnsupportedGrantType(
                    "Grant type must be authorization_code or refresh_token"
                )
        except OAuthError as e:
            self.metrics_client.increment(
                "mcpauth.oauth.token.failed",
                1,
                tag_dict={"grant_type": grant_type or "none", "error": e.error},
            )
            raise

        self.metrics_client.increment(
            "mcpauth.oauth.token.issued", 1, tag_dict={"grant_type": grant_type}
        )
        return response

    async def exchange_authorization_code(
        self, client_id: str, code: str, redirect_uri: str, code_verifier: str
    ) -> TokenResponse:
        if not code:
            raise InvalidRequest("Missing authorization code")
        if not redirect_uri:
            raise InvalidRequest.missing("redirect_uri")

        code_data = await self.codes.redeem(code)
        if code_data is None:
            raise InvalidGrant.code_invalid()
        if code_data.client_id != client_id:
            raise InvalidGrant.code_client_mismatch()
        if code_data.redirect_uri != redirect_uri:
            raise InvalidGrant.redirect_uri_mismatch()
        if code_data.code_challenge:
            if not code_verifier:
                raise InvalidRequest.missing("code_verifier")
            if not verify_pkce(
                code_data.code_challenge, code_data.code_challenge_method, code_verifier
            ):
                raise InvalidGrant.code_verifier_invalid()

        return await self._issue(client_id, code_data.user_id, code_data.scopes)

    async def refresh(self, client_id: str, refresh_token: str) -> TokenResponse:
        if not refresh_token:
            raise InvalidRequest.missing("refresh_token")

        current = await self.tokens.get_valid_refresh_token(refresh_token)
        if current is None:
            raise InvalidGrant.refresh_token_invalid()
        if current.client_id != client_id:
            raise InvalidGrant.refresh_client_mismatch()

        now = datetime.now(timezone.utc)
        jti = new_jti()
        new_refresh_token = secrets.token_hex(32)

        # Signed before rotating so a failure leaves the old refresh token usable.
        access_token = await self._sign(
            jti, client_id, current.user_id, current.scopes, now
        )
        old = await self.tokens.rotate(
            refresh_token,
            client_id,
            jti,
            new_refresh_token,
            now + timedelta(seconds=self.access_token_ttl),
            self.refresh_token_ttl,
        )
        if old is None:
            # Lost a race with a concurrent rotation or revocation.
            raise InvalidGrant.refresh_token_invalid()

        logger.info(
            "rotated tokens client_id=%s user_id=%s jti=%s", client_id, old.user_id, jti
        )
        return TokenResponse(
            access_token=access_token,
            expires_in=self.access_token_ttl,
            refresh_token=new_refresh_token,
            scope=" ".join(old.scopes),
        )

    async def revoke(self, client_id: str, client_secret: str, token: str) -> None:
        """
        Revoke a refresh token or an access JWT held by the client (RFC 7009).

        Unknown tokens and tokens owned by other clients are ignored so the response
        never reveals whether a token exists.
        """
        await self.authenticate_client(client_id, client_secret)
        if not token:
            raise InvalidRequest.missing("token")

        refresh = await self.tokens.get_refresh_token(token)
        if refresh is not None:
            if refresh.client_id == client_id:
                await self.tokens.revoke_refresh(token)
                await self.tokens.revoke_access(refresh.access_token_jti)
                logger.info("revoked refresh token client_id=%s", client_id)
            return

        validation = self.jwt_service.validate(token)
        if validation.claims is None:
            return
        record = await self.tokens.get_access_record(validation.claims.jti)
        if record is not None and record.client_id == client_id:
            await self.tokens.revoke_access(record.jti)
            logger.info(
                "revoked access token client_id=%s jti=%s", client_id, record.jti
            )

    async def _issue(self, client_id: str, user_id: int, scopes: List[str]) -> TokenResponse:
        now = datetime.now(timezone.utc)
        jti = new_jti()
        refresh_token = secrets.token_hex(32)

        access_token = await self._sign(jti, client_id, user_id, scopes, now)
        await self.tokens.issue_pair(
            jti,
            refresh_token,
            client_id,
            user_id,
            scopes,
            now + timedelta(seconds=self.access_token_ttl),
            self.refresh_token_ttl,
        )

        logger.info(
            "issued tokens client_id=%s user_id=%s jti=%s", client_id, user_id, jti
        )
        return TokenResponse(
            access_token=access_token,
            expires_in=self.access_token_ttl,
            refresh_token=refresh_token,
            scope=" ".join(scopes),
        )

    async def _sign(
        self,
        jti: str,
        client_id: str,
        user_id: int,
        scopes: List[str],
        issued_at: datetime,
    ) -> str:
        user = await self.users.resolve_user(user_id)
        return self.jwt_service.issue(
            jti,
            user_id,
            client_id,
            scopes,
            self.access_token_ttl,
            username=user.username if user else "",
            roles=user.roles if user else (),
            issued_at=issued_at,
        )
