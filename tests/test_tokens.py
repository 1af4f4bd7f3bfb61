"""
Unit tests for the access token ledger and refresh token store.

Covers pair issuance, revocation, single-use rotation and cleanup.
"""

import asyncio
from datetime import datetime, timedelta, timezone


def _in(seconds: int) -> datetime:
    return datetime.now(timezone.utc) + timedelta(seconds=seconds)


async def _pair(token_store, jti="jti-1", refresh="refresh-1", client_id="c1", user_id=42):
    await token_store.issue_pair(
        jti, refresh, client_id, user_id, ["mcp:read", "mcp:write"], _in(3600), 86400
    )


class TestLedger:
    """Test access token ledger rows."""

    async def test_missing_row_is_not_revoked(self, token_store):
        assert not await token_store.is_access_revoked("never-recorded")

    async def test_create_and_revoke(self, token_store):
        await token_store.create_access_record("jti-1", "c1", 42, ["mcp:read"], _in(3600))
        assert not await token_store.is_access_revoked("jti-1")

        await token_store.revoke_access("jti-1")
        assert await token_store.is_access_revoked("jti-1")

    async def test_expiry_as_timestamp(self, token_store):
        expires = int(_in(3600).timestamp())
        await token_store.create_access_record("jti-ts", "c1", 42, ["mcp:read"], expires)

        record = await token_store.get_access_record("jti-ts")
        assert record is not None
        assert record.scopes == "mcp:read"


class TestRefreshTokens:
    """Test refresh token lookups."""

    async def test_issue_pair(self, token_store):
        await _pair(token_store)

        data = await token_store.get_valid_refresh_token("refresh-1")
        assert data is not None
        assert data.access_token_jti == "jti-1"
        assert data.client_id == "c1"
        assert data.user_id == 42
        assert data.scopes == ["mcp:read", "mcp:write"]
        assert await token_store.get_access_record("jti-1") is not None

    async def test_expired_refresh_token(self, token_store):
        await token_store.create_refresh_token("old", "jti-x", "c1", 42, ["mcp:read"], ttl=-1)
        assert await token_store.get_valid_refresh_token("old") is None
        assert await token_store.get_refresh_token("old") is not None

    async def test_revoked_refresh_token(self, token_store):
        await _pair(token_store)
        await token_store.revoke_refresh("refresh-1")
        assert await token_store.get_valid_refresh_token("refresh-1") is None


class TestRotate:
    """Test refresh token rotation."""

    async def test_rotation(self, token_store):
        await _pair(token_store)

        old = await token_store.rotate("refresh-1", "c1", "jti-2", "refresh-2", _in(3600), 86400)

        assert old is not None
        assert old.access_token_jti == "jti-1"
        assert await token_store.is_access_revoked("jti-1")
        assert await token_store.get_valid_refresh_token("refresh-1") is None

        new = await token_store.get_valid_refresh_token("refresh-2")
        assert new.access_token_jti == "jti-2"
        assert new.user_id == 42
        assert new.scopes == ["mcp:read", "mcp:write"]
        assert not await token_store.is_access_revoked("jti-2")

    async def test_rotate_twice_fails(self, token_store):
        await _pair(token_store)
        assert await token_store.rotate("refresh-1", "c1", "jti-2", "r-2", _in(3600), 86400)
        assert await token_store.rotate("refresh-1", "c1", "jti-3", "r-3", _in(3600), 86400) is None
        assert await token_store.get_access_record("jti-3") is None

    async def test_rotate_wrong_client(self, token_store):
        await _pair(token_store)
        assert await token_store.rotate("refresh-1", "c2", "jti-2", "r-2", _in(3600), 86400) is None
        assert await token_store.get_valid_refresh_token("refresh-1") is not None

    async def test_concurrent_rotation_single_winner(self, token_store):
        await _pair(token_store)

        results = await asyncio.gather(
            *[
                token_store.rotate(
                    "refresh-1", "c1", f"jti-new-{i}", f"refresh-new-{i}", _in(3600), 86400
                )
                for i in range(4)
            ]
        )

        assert len([result for result in results if result is not None]) == 1


class TestBulkOperations:
    """Test user wide revocation and cleanup."""

    async def test_revoke_all_for_user(self, token_store):
        await _pair(token_store, "jti-1", "refresh-1", user_id=42)
        await _pair(token_store, "jti-2", "refresh-2", user_id=42)
        await _pair(token_store, "jti-3", "refresh-3", user_id=7)

        counts = await token_store.revoke_all_for_user(42)

        assert counts == {"access": 2, "refresh": 2}
        assert await token_store.is_access_revoked("jti-1")
        assert not await token_store.is_access_revoked("jti-3")
        assert await token_store.get_valid_refresh_token("refresh-3") is not None

    async def test_cleanup_expired(self, token_store):
        await _pair(token_store)
        await token_store.create_access_record(
            "jti-old", "c1", 42, ["mcp:read"], _in(-10)
        )
        await token_store.create_refresh_token("refresh-old", "jti-old", "c1", 42, [], ttl=-1)

        assert await token_store.cleanup_expired() == {"access": 1, "refresh": 1}
        assert await token_store.get_access_record("jti-1") is not None
        assert await token_store.get_refresh_token("refresh-old") is None
