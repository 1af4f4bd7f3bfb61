"""
Shared test configuration and fixtures for MCPAuth tests.

Provides database setup, store construction, signing keys and a small user directory
used across the test modules.

Tests run against a throwaway SQLite database by default. Set TEST_DATABASE_URL to an
async SQLAlchemy URL (for example postgresql+asyncpg://...) to run them against another
backend; tables are created before and dropped after every test.
"""

import os

import pytest
import pytest_asyncio
from jwcrypto import jwk
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from social.graze.mcpauth.auth.user_tokens import UserTokenStore
from social.graze.mcpauth.auth.users import StaticUserProvider
from social.graze.mcpauth.model.base import Base
from social.graze.mcpauth.model.oauth import OAuthClient  # noqa: F401
from social.graze.mcpauth.model.user_token import UserToken  # noqa: F401
from social.graze.mcpauth.oauth.clients import ClientStore
from social.graze.mcpauth.oauth.codes import CodeStore
from social.graze.mcpauth.oauth.grants import GrantService
from social.graze.mcpauth.oauth.jwt import JwtService
from social.graze.mcpauth.oauth.scopes import ScopeModel
from social.graze.mcpauth.oauth.tokens import TokenStore

TEST_ISSUER = "http://mcp.test"

TEST_USERS = {
    "1": {"username": "root", "roles": ["administrator"]},
    "7": {"username": "bob", "roles": ["subscriber"]},
    "42": {"username": "alice", "roles": ["editor"]},
}


@pytest.fixture
def database_url(tmp_path):
    """Database URL for the test, a fresh SQLite file unless TEST_DATABASE_URL is set."""
    return os.getenv(
        "TEST_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'mcpauth.db'}"
    )


def _immediate_transactions(engine):
    """
    Take the SQLite write lock when a transaction begins.

    pysqlite otherwise starts deferred transactions, and two connections racing to
    upgrade a read lock fail with "database is locked" instead of waiting.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


@pytest_asyncio.fixture(scope="function")
async def engine(database_url):
    """Create an async engine with all tables present."""
    engine = create_async_engine(database_url, echo=False)
    if engine.dialect.name == "sqlite":
        _immediate_transactions(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def client_store(session_maker):
    # Minimum bcrypt cost keeps the suite fast.
    return ClientStore(session_maker, secret_rounds=4)


@pytest.fixture
def code_store(session_maker):
    return CodeStore(session_maker)


@pytest.fixture
def token_store(session_maker):
    return TokenStore(session_maker)


@pytest.fixture
def user_token_store(session_maker):
    return UserTokenStore(session_maker)


@pytest.fixture
def user_directory():
    return dict(TEST_USERS)


@pytest.fixture
def users(user_directory):
    return StaticUserProvider.from_mapping(user_directory)


@pytest.fixture
def scope_model():
    return ScopeModel()


@pytest.fixture(scope="session")
def rsa_key():
    return jwk.JWK.generate(kty="RSA", size=2048)


@pytest.fixture(scope="session")
def other_rsa_key():
    return jwk.JWK.generate(kty="RSA", size=2048)


@pytest.fixture
def key_files(tmp_path, rsa_key):
    """Write the signing key pair as PEM files and return (private_path, public_path)."""
    private_path = tmp_path / "private.pem"
    public_path = tmp_path / "public.pem"
    private_path.write_bytes(rsa_key.export_to_pem(private_key=True, password=None))
    public_path.write_bytes(rsa_key.export_to_pem())
    return str(private_path), str(public_path)


@pytest.fixture
def jwt_service(rsa_key):
    return JwtService.from_pem(
        rsa_key.export_to_pem(private_key=True, password=None),
        rsa_key.export_to_pem(),
        TEST_ISSUER,
        TEST_ISSUER,
    )


@pytest.fixture
def grant_service(client_store, code_store, token_store, jwt_service, scope_model, users):
    return GrantService(
        client_store,
        code_store,
        token_store,
        jwt_service,
        scope_model,
        users,
        access_token_ttl=3600,
        refresh_token_ttl=86400,
        authorization_code_ttl=600,
    )


@pytest_asyncio.fixture
async def registered_client(client_store):
    """A confidential client `c1` with secret `s1` and one redirect URI."""
    return await client_store.register("c1", "s1", "Test Client", ["https://app.test/cb"])
