"""
Registered OAuth client store.

Client secrets are hashed with bcrypt at registration and never persisted or logged in
plaintext. bcrypt is deliberately slow, so hashing and checking run in a worker thread
to keep the event loop responsive.
"""

import asyncio
import logging
from typing import Iterable, List, Optional

import bcrypt
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from social.graze.mcpauth.model.base import utcnow
from social.graze.mcpauth.model.oauth import OAuthClient
from social.graze.mcpauth.oauth.errors import ClientNotFound, DuplicateClient

logger = logging.getLogger(__name__)

# Checked against when the client does not exist so both branches cost one bcrypt round.
_DUMMY_HASH = bcrypt.hashpw(b"unused-client-secret", bcrypt.gensalt(rounds=4))


def hash_secret(secret: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(secret.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode(
        "utf-8"
    )


def check_secret(secret: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(secret.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash.
        return False


class ClientStore:
    def __init__(
        self,
        database_session_maker: async_sessionmaker[AsyncSession],
        secret_rounds: int = 12,
    ) -> None:
        self.database_session_maker = database_session_maker
        self.secret_rounds = secret_rounds

    async def register(
        self,
        client_id: str,
        secret: str,
        name: str,
        redirect_uris: Iterable[str],
        confidential: bool = True,
    ) -> OAuthClient:
        secret_hash = await asyncio.to_thread(hash_secret, secret, self.secret_rounds)
        client = OAuthClient(
            client_id=client_id,
            client_secret_hash=secret_hash,
            name=name,
            redirect_uris=list(dict.fromkeys(redirect_uris)),
            is_confidential=confidential,
            created_at=utcnow(),
        )

        async with (self.database_session_maker() as database_session,):
            try:
                async with database_session.begin():
                    existing = await database_session.get(OAuthClient, client_id)
                    if existing is not None:
                        raise DuplicateClient(client_id)
                    database_session.add(client)
            except IntegrityError as e:
                raise DuplicateClient(client_id) from e

        logger.info("registered oauth client %s", client_id)
        return client

    async def lookup(self, client_id: str) -> OAuthClient:
        client = await self.get(client_id)
        if client is None:
            raise ClientNotFound(client_id)
        return client

    async def get(self, client_id: str) -> Optional[OAuthClient]:
        async with (self.database_session_maker() as database_session,):
            return await database_session.get(OAuthClient, client_id)

    async def verify_credentials(self, client_id: str, secret: str) -> bool:
        """
        Check a client secret against the stored hash.

        Never raises for an unknown client: the check still runs against a throwaway hash
        and the result is False, so callers cannot distinguish a missing client from a
        wrong secret.
        """
        client = await self.get(client_id)
        if client is None:
            await asyncio.to_thread(check_secret, secret, _DUMMY_HASH.decode("utf-8"))
            return False
        return await asyncio.to_thread(check_secret, secret, client.client_secret_hash)

    async def verify_redirect_uri(self, client_id: str, uri: str) -> bool:
        client = await self.get(client_id)
        if client is None:
            return False
        return uri in client.redirect_uris

    async def delete(self, client_id: str) -> bool:
        async with (self.database_session_maker() as database_session,):
            async with database_session.begin():
                result = await database_session.execute(
                    delete(OAuthClient).where(OAuthClient.client_id == client_id)
                )
        deleted = (result.rowcount or 0) > 0
        if deleted:
            logger.info("deleted oauth client %s", client_id)
        return deleted

    async def list_clients(self) -> List[OAuthClient]:
        async with (self.database_session_maker() as database_session,):
            stmt = select(OAuthClient).order_by(OAuthClient.created_at)
            return list((await database_session.scalars(stmt)).all())
