import argparse
import asyncio
import contextlib
import json
import logging
import os
import secrets
from datetime import timedelta
from typing import AsyncIterator, List, Optional

from jwcrypto import jwk
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from social.graze.mcpauth.auth.user_tokens import UserTokenStore
from social.graze.mcpauth.model.base import utcnow
from social.graze.mcpauth.model.oauth import client_summary
from social.graze.mcpauth.oauth.clients import ClientStore
from social.graze.mcpauth.oauth.errors import DuplicateClient
from social.graze.mcpauth.oauth.tokens import TokenStore

logger = logging.getLogger(__name__)


def genKeys(private_key_path: str, public_key_path: str, size: int = 2048) -> None:
    key = jwk.JWK.generate(kty="RSA", size=size)

    with open(private_key_path, "wb") as fd:
        fd.write(key.export_to_pem(private_key=True, password=None))
    os.chmod(private_key_path, 0o600)

    with open(public_key_path, "wb") as fd:
        fd.write(key.export_to_pem())

    print(f"wrote {private_key_path} and {public_key_path} (kid {key.thumbprint()})")


@contextlib.asynccontextmanager
async def sessionMaker(database_url: str) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    engine = create_async_engine(database_url)
    try:
        yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    finally:
        await engine.dispose()


async def createClient(
    database_url: str,
    client_id: str,
    name: str,
    redirect_uris: List[str],
    confidential: bool,
    secret: Optional[str],
    rounds: int,
) -> None:
    if secret is None:
        secret = secrets.token_urlsafe(32)

    async with sessionMaker(database_url) as database_session_maker:
        store = ClientStore(database_session_maker, secret_rounds=rounds)
        try:
            client = await store.register(
                client_id, secret, name, redirect_uris, confidential
            )
        except DuplicateClient:
            print(f"client {client_id} already exists")
            return

    print(json.dumps({**client_summary(client), "client_secret": secret}, indent=2))
    print("The client secret is shown only once.")


async def listClients(database_url: str) -> None:
    async with sessionMaker(database_url) as database_session_maker:
        clients = await ClientStore(database_session_maker).list_clients()
    for client in clients:
        print(json.dumps(client_summary(client)))


async def deleteClient(database_url: str, client_id: str) -> None:
    async with sessionMaker(database_url) as database_session_maker:
        deleted = await ClientStore(database_session_maker).delete(client_id)
    if deleted:
        print(f"deleted client {client_id}")
    else:
        print(f"client {client_id} not found")


async def createToken(
    database_url: str, user_id: int, label: Optional[str], expires_in_days: Optional[int]
) -> None:
    expires_at = None
    if expires_in_days is not None:
        expires_at = utcnow() + timedelta(days=expires_in_days)

    async with sessionMaker(database_url) as database_session_maker:
        store = UserTokenStore(database_session_maker)
        plaintext, record = await store.create(user_id, label, expires_at)
    print(f"token {record.id} for user {user_id}: {plaintext}")
    print("The token is shown only once.")


async def revokeUser(database_url: str, user_id: int) -> None:
    async with sessionMaker(database_url) as database_session_maker:
        counts = await TokenStore(database_session_maker).revoke_all_for_user(user_id)
    print(
        f"revoked {counts['access']} access and {counts['refresh']} refresh tokens "
        f"for user {user_id}"
    )


async def realMain() -> None:
    parser = argparse.ArgumentParser(
        prog="mcpauthutil", description="MCP authorization server utilities"
    )

    parser.add_argument(
        "--database-url",
        default=os.getenv("DATABASE_URL", os.getenv("PG_DSN", "")),
        help="SQLAlchemy async database URL. Defaults to DATABASE_URL or PG_DSN.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    gen_keys = subparsers.add_parser("gen-keys", help="Generate an RSA signing key pair")
    gen_keys.add_argument("private_key_path", help="Where to write the private key PEM.")
    gen_keys.add_argument("public_key_path", help="Where to write the public key PEM.")
    gen_keys.add_argument("--size", type=int, default=2048, help="RSA modulus size.")

    create_client = subparsers.add_parser("create-client", help="Register an OAuth client")
    create_client.add_argument("client_id", help="The client identifier.")
    create_client.add_argument("name", help="Display name shown on the consent screen.")
    create_client.add_argument(
        "redirect_uris", nargs="+", help="Exact redirect URIs the client may use."
    )
    create_client.add_argument(
        "--public", action="store_true", help="Register a public (non-confidential) client."
    )
    create_client.add_argument(
        "--secret", default=None, help="Client secret. Generated when omitted."
    )
    create_client.add_argument(
        "--rounds", type=int, default=12, help="bcrypt cost factor."
    )

    _ = subparsers.add_parser("list-clients", help="List registered OAuth clients")

    delete_client = subparsers.add_parser("delete-client", help="Delete an OAuth client")
    delete_client.add_argument("client_id", help="The client identifier.")

    create_token = subparsers.add_parser("create-token", help="Create a static user token")
    create_token.add_argument("user_id", type=int, help="The owning user id.")
    create_token.add_argument("--label", default=None, help="A label for the token.")
    create_token.add_argument(
        "--expires-in-days", type=int, default=None, help="Expiry. Never expires when omitted."
    )

    revoke_user = subparsers.add_parser(
        "revoke-user", help="Revoke every OAuth access and refresh token of a user"
    )
    revoke_user.add_argument("user_id", type=int, help="The user id.")

    args = parser.parse_args()
    command = args.command

    if command == "gen-keys":
        genKeys(args.private_key_path, args.public_key_path, args.size)
        return

    if not args.database_url:
        parser.error("--database-url, DATABASE_URL or PG_DSN is required")

    if command == "create-client":
        await createClient(
            args.database_url,
            args.client_id,
            args.name,
            args.redirect_uris,
            not args.public,
            args.secret,
            args.rounds,
        )
    elif command == "list-clients":
        await listClients(args.database_url)
    elif command == "delete-client":
        await deleteClient(args.database_url, args.client_id)
    elif command == "create-token":
        await createToken(
            args.database_url, args.user_id, args.label, args.expires_in_days
        )
    elif command == "revoke-user":
        await revokeUser(args.database_url, args.user_id)


def main() -> None:
    asyncio.run(realMain())


if __name__ == "__main__":
    main()
