"""Static user token data model.

Static tokens are long lived opaque credentials owned by a single user. Only the
SHA-256 hash of the token is persisted; the plaintext is shown once at creation.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from social.graze.mcpauth.model.base import Base


class UserToken(Base):
    """Hashed static API token belonging to a user."""
    __tablename__ = "user_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    label: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    last_used_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("idx_user_tokens_token_hash", "token_hash", unique=True),
        Index("idx_user_tokens_user_id", "user_id"),
        Index("idx_user_tokens_expires", "expires_at"),
    )
