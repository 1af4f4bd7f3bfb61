"""oauth server

Revision ID: 5c1e0a9d7b42
Revises:
Create Date: 2026-10-18 10:02:11.418230

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "5c1e0a9d7b42"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "oauth_clients",
        sa.Column("client_id", sa.String(128), primary_key=True),
        sa.Column("client_secret_hash", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("redirect_uris", sa.JSON, nullable=False),
        sa.Column("is_confidential", sa.Boolean, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "oauth_authorization_codes",
        sa.Column("code", sa.String(128), primary_key=True),
        sa.Column("client_id", sa.String(128), nullable=False),
        sa.Column("user_id", sa.Integer, nullable=False),
        sa.Column("redirect_uri", sa.String(1024), nullable=False),
        sa.Column("scopes", sa.String(512), nullable=False),
        sa.Column("code_challenge", sa.String(128), nullable=True),
        sa.Column("code_challenge_method", sa.String(16), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked", sa.Boolean, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "idx_oauth_codes_client_id", "oauth_authorization_codes", ["client_id"]
    )
    op.create_index("idx_oauth_codes_user_id", "oauth_authorization_codes", ["user_id"])
    op.create_index(
        "idx_oauth_codes_expires", "oauth_authorization_codes", ["expires_at"]
    )

    op.create_table(
        "oauth_access_tokens",
        sa.Column("jti", sa.String(64), primary_key=True),
        sa.Column("client_id", sa.String(128), nullable=False),
        sa.Column("user_id", sa.Integer, nullable=False),
        sa.Column("scopes", sa.String(512), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked", sa.Boolean, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "idx_oauth_access_tokens_user_id", "oauth_access_tokens", ["user_id"]
    )
    op.create_index(
        "idx_oauth_access_tokens_expires", "oauth_access_tokens", ["expires_at"]
    )

    op.create_table(
        "oauth_refresh_tokens",
        sa.Column("token", sa.String(128), primary_key=True),
        sa.Column("access_token_jti", sa.String(64), nullable=False),
        sa.Column("client_id", sa.String(128), nullable=False),
        sa.Column("user_id", sa.Integer, nullable=False),
        sa.Column("scopes", sa.String(512), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked", sa.Boolean, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "idx_oauth_refresh_tokens_user_id", "oauth_refresh_tokens", ["user_id"]
    )
    op.create_index(
        "idx_oauth_refresh_tokens_jti", "oauth_refresh_tokens", ["access_token_jti"]
    )
    op.create_index(
        "idx_oauth_refresh_tokens_expires", "oauth_refresh_tokens", ["expires_at"]
    )

    op.create_table(
        "user_tokens",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, nullable=False),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("label", sa.String(255), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "idx_user_tokens_token_hash", "user_tokens", ["token_hash"], unique=True
    )
    op.create_index("idx_user_tokens_user_id", "user_tokens", ["user_id"])
    op.create_index("idx_user_tokens_expires", "user_tokens", ["expires_at"])


def downgrade() -> None:
    op.drop_table("user_tokens")
    op.drop_table("oauth_refresh_tokens")
    op.drop_table("oauth_access_tokens")
    op.drop_table("oauth_authorization_codes")
    op.drop_table("oauth_clients")
