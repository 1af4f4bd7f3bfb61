"""
Authorization code store.

Codes are single use. `redeem` is one conditional `UPDATE ... RETURNING` statement that
only matches a row which is unrevoked and unexpired, and flips it to revoked in the
same statement. Two concurrent redemptions of the same code therefore race on a single
row update and exactly one of them gets the row back.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from social.graze.mcpauth.model.base import as_utc, join_scopes, split_scopes, utcnow
from social.graze.mcpauth.model.oauth import AuthorizationCode
from social.graze.mcpauth.oauth.pkce import METHOD_S256

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CodeData:
    code: str
    client_id: str
    user_id: int
    redirect_uri: str
    scopes: List[str]
    code_challenge: Optional[str]
    code_challenge_method: str
    expires_at: datetime


def _code_data(row: AuthorizationCode) -> CodeData:
    return CodeData(
        code=row.code,
        client_id=row.client_id,
        user_id=row.user_id,
        redirect_uri=row.redirect_uri,
        scopes=split_scopes(row.scopes),
        code_challenge=row.code_challenge,
        code_challenge_method=row.code_challenge_method,
        expires_at=as_utc(row.expires_at),  # type: ignore
    )


class CodeStore:
    def __init__(self, database_session_maker: async_sessionmaker[AsyncSession]) -> None:
        self.database_session_maker = database_session_maker

    async def issue(
        self,
        client_id: str,
        user_id: int,
        redirect_uri: str,
        scopes: Iterable[str],
        code_challenge: Optional[str] = None,
        code_challenge_method: str = METHOD_S256,
        ttl: int = 600,
    ) -> str:
        code = secrets.token_hex(32)
        now = utcnow()

        async with (self.database_session_maker() as database_session,):
            async with database_session.begin():
                database_session.add(
                    AuthorizationCode(
                        code=code,
                        client_id=client_id,
                        user_id=user_id,
                        redirect_uri=redirect_uri,
                        scopes=join_scopes(scopes),
                        code_challenge=code_challenge or None,
                        code_challenge_method=code_challenge_method or METHOD_S256,
                        expires_at=now + timedelta(seconds=ttl),
                        revoked=False,
                        created_at=now,
                    )
                )

        logger.debug("issued authorization code client_id=%s user_id=%s", client_id, user_id)
        return code

    async def redeem(self, code: str) -> Optional[CodeData]:
        """
        Atomically consume a code.

        Returns None when the code does not exist, was already consumed, or has expired.
        """
        now = utcnow()
        stmt = (
            update(AuthorizationCode)
            .where(
                AuthorizationCode.code == code,
                AuthorizationCode.revoked.is_(False),
                AuthorizationCode.expires_at > now,
            )
            .values(revoked=True)
            .returning(AuthorizationCode)
            .execution_options(synchronize_session=False)
        )

        async with (self.database_session_maker() as database_session,):
            async with database_session.begin():
                row = (await database_session.scalars(stmt)).one_or_none()
                data = _code_data(row) if row is not None else None

        return data

    async def cleanup_expired(self) -> int:
        now = utcnow()
        async with (self.database_session_maker() as database_session,):
            async with database_session.begin():
                result = await database_session.execute(
                    delete(AuthorizationCode).where(AuthorizationCode.expires_at <= now)
                )
        return result.rowcount or 0
