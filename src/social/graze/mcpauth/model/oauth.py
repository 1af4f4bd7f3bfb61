"""OAuth 2.1 data models for the MCP authorization server.

Provides SQLAlchemy models for registered clients, single-use authorization codes,
the access token revocation ledger and rotating refresh tokens.
"""
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import Boolean, DateTime, Index, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from social.graze.mcpauth.model.base import Base, str64, str255, str1024, tokenpk


class OAuthClient(Base):
    """Registered OAuth client application.

    The client secret is stored only as a bcrypt hash. Redirect URIs are an exact-match
    allow list; no prefix or wildcard matching is ever applied to them.
    """
    __tablename__ = "oauth_clients"

    client_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    client_secret_hash: Mapped[str255]
    name: Mapped[str255]
    redirect_uris: Mapped[List[str]] = mapped_column(JSON, nullable=False)
    is_confidential: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    def __repr__(self) -> str:
        return f"OAuthClient(client_id={self.client_id!r}, name={self.name!r})"


class AuthorizationCode(Base):
    """Short-lived authorization code with optional PKCE challenge.

    Codes are consumed exactly once: redemption flips `revoked` with a conditional
    update, so a second redemption of the same code never matches.
    """
    __tablename__ = "oauth_authorization_codes"

    code: Mapped[tokenpk]
    client_id: Mapped[str] = mapped_column(String(128), nullable=False)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    redirect_uri: Mapped[str1024]
    scopes: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    code_challenge: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    code_challenge_method: Mapped[str] = mapped_column(
        String(16), nullable=False, default="S256"
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    revoked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    __table_args__ = (
        Index("idx_oauth_codes_client_id", "client_id"),
        Index("idx_oauth_codes_user_id", "user_id"),
        Index("idx_oauth_codes_expires", "expires_at"),
    )


class AccessToken(Base):
    """Revocation ledger entry for an issued access JWT.

    The bearer credential itself is a stateless signed JWT; this row only exists so
    that a token can be revoked before its `exp` without rotating signing keys.
    """
    __tablename__ = "oauth_access_tokens"

    jti: Mapped[str] = mapped_column(String(64), primary_key=True)
    client_id: Mapped[str] = mapped_column(String(128), nullable=False)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    scopes: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    revoked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    __table_args__ = (
        Index("idx_oauth_access_tokens_user_id", "user_id"),
        Index("idx_oauth_access_tokens_expires", "expires_at"),
    )


class RefreshToken(Base):
    """Opaque refresh token paired with the access token it was issued alongside."""
    __tablename__ = "oauth_refresh_tokens"

    token: Mapped[tokenpk]
    access_token_jti: Mapped[str64]
    client_id: Mapped[str] = mapped_column(String(128), nullable=False)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    scopes: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    revoked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    __table_args__ = (
        Index("idx_oauth_refresh_tokens_user_id", "user_id"),
        Index("idx_oauth_refresh_tokens_jti", "access_token_jti"),
        Index("idx_oauth_refresh_tokens_expires", "expires_at"),
    )


def client_summary(client: OAuthClient) -> dict[str, Any]:
    """Public view of a client, without secret material."""
    return {
        "client_id": client.client_id,
        "name": client.name,
        "redirect_uris": list(client.redirect_uris),
        "is_confidential": client.is_confidential,
        "created_at": client.created_at.isoformat(),
    }
