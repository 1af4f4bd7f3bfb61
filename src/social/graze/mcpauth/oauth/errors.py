"""
OAuth error taxonomy.

Every failure the authorization server reports to a client is one of these exceptions.
Each carries the RFC 6749 `error` code that goes on the wire, the HTTP status the token
endpoint answers with, and a human readable description. Handlers turn them into JSON
(token and revocation endpoints) or into an error redirect (authorization endpoint).

`ServerError` is special: its description is always generic. The underlying cause is
logged and reported to Sentry but never returned to the client.
"""

from typing import Any, Dict, Optional


class OAuthError(Exception):
    """Base class for protocol errors with a wire error code and HTTP status."""

    error: str = "server_error"
    status: int = 500

    def __init__(self, description: str = "") -> None:
        super().__init__(description)
        self.description = description

    def as_dict(self) -> Dict[str, Any]:
        return {"error": self.error, "error_description": self.description}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.description!r})"


class InvalidClient(OAuthError):
    error = "invalid_client"
    status = 401

    @staticmethod
    def missing_credentials() -> "InvalidClient":
        return InvalidClient("Missing client credentials")

    @staticmethod
    def bad_credentials() -> "InvalidClient":
        return InvalidClient("Invalid client credentials")


class InvalidGrant(OAuthError):
    error = "invalid_grant"
    status = 400

    @staticmethod
    def code_invalid() -> "InvalidGrant":
        return InvalidGrant("Invalid, expired, or already used authorization code")

    @staticmethod
    def code_client_mismatch() -> "InvalidGrant":
        return InvalidGrant("Authorization code was issued to a different client")

    @staticmethod
    def redirect_uri_mismatch() -> "InvalidGrant":
        return InvalidGrant("Redirect URI does not match")

    @staticmethod
    def code_verifier_invalid() -> "InvalidGrant":
        return InvalidGrant("Invalid code_verifier")

    @staticmethod
    def refresh_token_invalid() -> "InvalidGrant":
        return InvalidGrant("Invalid, expired, or revoked refresh token")

    @staticmethod
    def refresh_client_mismatch() -> "InvalidGrant":
        return InvalidGrant("Refresh token was issued to a different client")


class InvalidRequest(OAuthError):
    error = "invalid_request"
    status = 400

    @staticmethod
    def missing(parameter: str) -> "InvalidRequest":
        return InvalidRequest(f"Missing {parameter}")


class InvalidScope(OAuthError):
    error = "invalid_scope"
    status = 400


class UnsupportedGrantType(OAuthError):
    error = "unsupported_grant_type"
    status = 400


class AccessDenied(OAuthError):
    error = "access_denied"
    status = 403

    @staticmethod
    def user_denied() -> "AccessDenied":
        return AccessDenied("User denied authorization")

    @staticmethod
    def no_grantable_scopes() -> "AccessDenied":
        return AccessDenied("You do not have permission for any requested scopes")


class InvalidToken(OAuthError):
    error = "invalid_token"
    status = 401


class InsufficientScope(OAuthError):
    """Authenticated, but the principal lacks the scope an operation requires."""

    error = "insufficient_scope"
    status = 403

    def __init__(self, required_scope: str) -> None:
        super().__init__(f"The {required_scope} scope is required")
        self.required_scope = required_scope


class ServerError(OAuthError):
    error = "server_error"
    status = 500

    def __init__(self, description: str = "Internal server error", cause: Optional[BaseException] = None) -> None:
        super().__init__(description)
        self.cause = cause


class TemporarilyUnavailable(OAuthError):
    error = "server_error"
    status = 503

    @staticmethod
    def oauth_disabled() -> "TemporarilyUnavailable":
        return TemporarilyUnavailable("OAuth is not enabled")


class DuplicateClient(Exception):
    """A client with the same client_id is already registered."""


class ClientNotFound(Exception):
    """No client is registered under the given client_id."""


class KeyLoadError(Exception):
    """Signing or verification key material could not be loaded."""
