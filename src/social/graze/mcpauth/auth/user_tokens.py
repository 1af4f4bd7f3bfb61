"""
Static user API tokens.

A static token is 32 random bytes, hex encoded, handed to the user once. Only its
SHA-256 digest is stored, and lookups hash the presented candidate and search by digest.
"""

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from social.graze.mcpauth.model.base import as_utc, utcnow
from social.graze.mcpauth.model.user_token import UserToken

logger = logging.getLogger(__name__)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class TokenStatus(Enum):
    VALID = "valid"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"


@dataclass(frozen=True)
class TokenLookup:
    status: TokenStatus
    token: Optional[UserToken] = None

    @property
    def valid(self) -> bool:
        return self.status is TokenStatus.VALID


class UserTokenStore:
    def __init__(self, database_session_maker: async_sessionmaker[AsyncSession]) -> None:
        self.database_session_maker = database_session_maker

    async def create(
        self,
        user_id: int,
        label: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> Tuple[str, UserToken]:
        """Create a token. The returned plaintext is not recoverable afterwards."""
        plaintext = secrets.token_hex(32)
        record = UserToken(
            user_id=user_id,
            token_hash=hash_token(plaintext),
            label=label,
            expires_at=expires_at,
            created_at=utcnow(),
        )
        async with (self.database_session_maker() as database_session,):
            async with database_session.begin():
                database_session.add(record)

        logger.info("created static token id=%s user_id=%s", record.id, user_id)
        return plaintext, record

    async def validate(self, token: str) -> TokenLookup:
        async with (self.database_session_maker() as database_session,):
            record = await database_session.scalar(
                select(UserToken).where(UserToken.token_hash == hash_token(token))
            )
        if record is None:
            return TokenLookup(TokenStatus.NOT_FOUND)

        expires_at = as_utc(record.expires_at)
        if expires_at is not None and expires_at <= utcnow():
            return TokenLookup(TokenStatus.EXPIRED, record)
        return TokenLookup(TokenStatus.VALID, record)

    async def touch(self, token: str) -> None:
        async with (self.database_session_maker() as database_session,):
            async with database_session.begin():
                await database_session.execute(
                    update(UserToken)
                    .where(UserToken.token_hash == hash_token(token))
                    .values(last_used_at=utcnow())
                )

    async def list_for_user(self, user_id: int) -> List[UserToken]:
        async with (self.database_session_maker() as database_session,):
            stmt = (
                select(UserToken)
                .where(UserToken.user_id == user_id)
                .order_by(UserToken.created_at.desc(), UserToken.id.desc())
            )
            return list((await database_session.scalars(stmt)).all())

    async def revoke(self, token_id: int, user_id: int) -> bool:
        """Delete a token, only if it belongs to `user_id`."""
        async with (self.database_session_maker() as database_session,):
            async with database_session.begin():
                result = await database_session.execute(
                    delete(UserToken).where(
                        UserToken.id == token_id, UserToken.user_id == user_id
                    )
                )
        return (result.rowcount or 0) > 0

    async def cleanup_expired(self) -> int:
        now = utcnow()
        async with (self.database_session_maker() as database_session,):
            async with database_session.begin():
                result = await database_session.execute(
                    delete(UserToken).where(
                        UserToken.expires_at.is_not(None), UserToken.expires_at <= now
                    )
                )
        return result.rowcount or 0
