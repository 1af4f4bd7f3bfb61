"""
Access token ledger and refresh token store.

Access tokens are stateless JWTs; the ledger row keyed by `jti` only records whether a
token was revoked before its natural expiry. Refresh tokens are opaque random strings
stored in full and paired with the `jti` of the access token issued alongside them.

Mutations that must not interleave are single transactions:

* `issue_pair` writes the ledger row and the refresh token together.
* `rotate` claims the old refresh token with a conditional update, revokes the access
  token it was paired with and writes the replacement pair, all in one transaction.
  A refresh token can therefore be rotated at most once, even under concurrent use.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Union

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from social.graze.mcpauth.model.base import as_utc, join_scopes, split_scopes, utcnow
from social.graze.mcpauth.model.oauth import AccessToken, RefreshToken

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefreshData:
    token: str
    access_token_jti: str
    client_id: str
    user_id: int
    scopes: List[str]
    expires_at: datetime


def _refresh_data(row: RefreshToken) -> RefreshData:
    return RefreshData(
        token=row.token,
        access_token_jti=row.access_token_jti,
        client_id=row.client_id,
        user_id=row.user_id,
        scopes=split_scopes(row.scopes),
        expires_at=as_utc(row.expires_at),  # type: ignore
    )


def _expiry(expires_at: Union[datetime, int, float]) -> datetime:
    if isinstance(expires_at, datetime):
        return expires_at
    return datetime.fromtimestamp(expires_at, tz=timezone.utc)


class TokenStore:
    def __init__(self, database_session_maker: async_sessionmaker[AsyncSession]) -> None:
        self.database_session_maker = database_session_maker

    def _access_row(
        self,
        jti: str,
        client_id: str,
        user_id: int,
        scopes: Iterable[str],
        expires_at: Union[datetime, int, float],
        now: datetime,
    ) -> AccessToken:
        return AccessToken(
            jti=jti,
            client_id=client_id,
            user_id=user_id,
            scopes=join_scopes(scopes),
            expires_at=_expiry(expires_at),
            revoked=False,
            created_at=now,
        )

    def _refresh_row(
        self,
        token: str,
        access_jti: str,
        client_id: str,
        user_id: int,
        scopes: Iterable[str],
        ttl: int,
        now: datetime,
    ) -> RefreshToken:
        return RefreshToken(
            token=token,
            access_token_jti=access_jti,
            client_id=client_id,
            user_id=user_id,
            scopes=join_scopes(scopes),
            expires_at=now + timedelta(seconds=ttl),
            revoked=False,
            created_at=now,
        )

    async def create_access_record(
        self,
        jti: str,
        client_id: str,
        user_id: int,
        scopes: Iterable[str],
        expires_at: Union[datetime, int, float],
    ) -> None:
        async with (self.database_session_maker() as database_session,):
            async with database_session.begin():
                database_session.add(
                    self._access_row(jti, client_id, user_id, scopes, expires_at, utcnow())
                )

    async def create_refresh_token(
        self,
        token: str,
        access_jti: str,
        client_id: str,
        user_id: int,
        scopes: Iterable[str],
        ttl: int = 2592000,
    ) -> None:
        async with (self.database_session_maker() as database_session,):
            async with database_session.begin():
                database_session.add(
                    self._refresh_row(
                        token, access_jti, client_id, user_id, scopes, ttl, utcnow()
                    )
                )

    async def issue_pair(
        self,
        jti: str,
        refresh_token: str,
        client_id: str,
        user_id: int,
        scopes: Iterable[str],
        access_expires_at: Union[datetime, int, float],
        refresh_ttl: int,
    ) -> None:
        scopes = list(scopes)
        now = utcnow()
        async with (self.database_session_maker() as database_session,):
            async with database_session.begin():
                database_session.add(
                    self._access_row(jti, client_id, user_id, scopes, access_expires_at, now)
                )
                database_session.add(
                    self._refresh_row(
                        refresh_token, jti, client_id, user_id, scopes, refresh_ttl, now
                    )
                )

    async def is_access_revoked(self, jti: str) -> bool:
        """True only when a ledger row exists for `jti` and it is marked revoked."""
        async with (self.database_session_maker() as database_session,):
            revoked = await database_session.scalar(
                select(AccessToken.revoked).where(AccessToken.jti == jti)
            )
        return bool(revoked)

    async def get_valid_refresh_token(self, token: str) -> Optional[RefreshData]:
        async with (self.database_session_maker() as database_session,):
            row = await database_session.scalar(
                select(RefreshToken).where(
                    RefreshToken.token == token,
                    RefreshToken.revoked.is_(False),
                    RefreshToken.expires_at > utcnow(),
                )
            )
        if row is None:
            return None
        return _refresh_data(row)

    async def rotate(
        self,
        token: str,
        client_id: str,
        new_jti: str,
        new_refresh_token: str,
        access_expires_at: Union[datetime, int, float],
        refresh_ttl: int,
    ) -> Optional[RefreshData]:
        """
        Exchange a refresh token for a new access/refresh pair.

        Returns the data of the refresh token that was consumed, or None when it was
        already used, revoked, expired or belongs to another client. In the None case
        nothing is written.
        """
        now = utcnow()
        claim = (
            update(RefreshToken)
            .where(
                RefreshToken.token == token,
                RefreshToken.client_id == client_id,
                RefreshToken.revoked.is_(False),
                RefreshToken.expires_at > now,
            )
            .values(revoked=True)
            .returning(RefreshToken)
            .execution_options(synchronize_session=False)
        )

        async with (self.database_session_maker() as database_session,):
            async with database_session.begin():
                row = (await database_session.scalars(claim)).one_or_none()
                if row is None:
                    return None
                old = _refresh_data(row)

                await database_session.execute(
                    update(AccessToken)
                    .where(AccessToken.jti == old.access_token_jti)
                    .values(revoked=True)
                )
                database_session.add(
                    self._access_row(
                        new_jti, client_id, old.user_id, old.scopes, access_expires_at, now
                    )
                )
                database_session.add(
                    self._refresh_row(
                        new_refresh_token,
                        new_jti,
                        client_id,
                        old.user_id,
                        old.scopes,
                        refresh_ttl,
                        now,
                    )
                )

        logger.debug(
            "rotated refresh token client_id=%s user_id=%s old_jti=%s new_jti=%s",
            client_id,
            old.user_id,
            old.access_token_jti,
            new_jti,
        )
        return old

    async def get_refresh_token(self, token: str) -> Optional[RefreshData]:
        """Look up a refresh token regardless of its state."""
        async with (self.database_session_maker() as database_session,):
            row = await database_session.get(RefreshToken, token)
        if row is None:
            return None
        return _refresh_data(row)

    async def get_access_record(self, jti: str) -> Optional[AccessToken]:
        async with (self.database_session_maker() as database_session,):
            return await database_session.get(AccessToken, jti)

    async def revoke_access(self, jti: str) -> None:
        async with (self.database_session_maker() as database_session,):
            async with database_session.begin():
                await database_session.execute(
                    update(AccessToken).where(AccessToken.jti == jti).values(revoked=True)
                )

    async def revoke_refresh(self, token: str) -> None:
        async with (self.database_session_maker() as database_session,):
            async with database_session.begin():
                await database_session.execute(
                    update(RefreshToken)
                    .where(RefreshToken.token == token)
                    .values(revoked=True)
                )

    async def revoke_all_for_user(self, user_id: int) -> Dict[str, int]:
        async with (self.database_session_maker() as database_session,):
            async with database_session.begin():
                access = await database_session.execute(
                    update(AccessToken)
                    .where(AccessToken.user_id == user_id, AccessToken.revoked.is_(False))
                    .values(revoked=True)
                )
                refresh = await database_session.execute(
                    update(RefreshToken)
                    .where(RefreshToken.user_id == user_id, RefreshToken.revoked.is_(False))
                    .values(revoked=True)
                )

        counts = {"access": access.rowcount or 0, "refresh": refresh.rowcount or 0}
        logger.info("revoked all tokens for user_id=%s %s", user_id, counts)
        return counts

    async def cleanup_expired(self) -> Dict[str, int]:
        now = utcnow()
        async with (self.database_session_maker() as database_session,):
            async with database_session.begin():
                access = await database_session.execute(
                    delete(AccessToken).where(AccessToken.expires_at <= now)
                )
                refresh = await database_session.execute(
                    delete(RefreshToken).where(RefreshToken.expires_at <= now)
                )
        return {"access": access.rowcount or 0, "refresh": refresh.rowcount or 0}
