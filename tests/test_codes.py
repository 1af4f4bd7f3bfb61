"""
Unit tests for the authorization code store.

Covers issuance, single-use redemption (including concurrent redemption), expiry and
cleanup.
"""

import asyncio

from social.graze.mcpauth.oauth.pkce import METHOD_S256


async def _issue(code_store, **kwargs):
    params = {
        "client_id": "c1",
        "user_id": 42,
        "redirect_uri": "https://app.test/cb",
        "scopes": ["mcp:read", "mcp:write"],
    }
    params.update(kwargs)
    return await code_store.issue(**params)


class TestIssue:
    """Test code issuance."""

    async def test_code_format(self, code_store):
        code = await _issue(code_store)
        assert len(code) == 64
        int(code, 16)

    async def test_codes_are_unique(self, code_store):
        codes = {await _issue(code_store) for _ in range(5)}
        assert len(codes) == 5


class TestRedeem:
    """Test single-use redemption."""

    async def test_redeem_returns_data(self, code_store):
        code = await _issue(code_store, code_challenge="challenge")
        data = await code_store.redeem(code)

        assert data is not None
        assert data.code == code
        assert data.client_id == "c1"
        assert data.user_id == 42
        assert data.redirect_uri == "https://app.test/cb"
        assert data.scopes == ["mcp:read", "mcp:write"]
        assert data.code_challenge == "challenge"
        assert data.code_challenge_method == METHOD_S256
        assert data.expires_at.tzinfo is not None

    async def test_no_challenge_stored_as_none(self, code_store):
        code = await _issue(code_store, code_challenge="")
        data = await code_store.redeem(code)
        assert data.code_challenge is None

    async def test_second_redeem_fails(self, code_store):
        code = await _issue(code_store)
        assert await code_store.redeem(code) is not None
        assert await code_store.redeem(code) is None

    async def test_unknown_code(self, code_store):
        assert await code_store.redeem("0" * 64) is None

    async def test_expired_code(self, code_store):
        code = await _issue(code_store, ttl=-1)
        assert await code_store.redeem(code) is None

    async def test_concurrent_redeem_single_winner(self, code_store):
        """Exactly one of several simultaneous redemptions gets the code."""
        code = await _issue(code_store)

        results = await asyncio.gather(*[code_store.redeem(code) for _ in range(5)])

        winners = [result for result in results if result is not None]
        assert len(winners) == 1
        assert winners[0].code == code


class TestCleanup:
    """Test expired code removal."""

    async def test_only_expired_deleted(self, code_store):
        await _issue(code_store, ttl=-1)
        await _issue(code_store, ttl=-1)
        live = await _issue(code_store)

        assert await code_store.cleanup_expired() == 2
        assert await code_store.redeem(live) is not None
        assert await code_store.cleanup_expired() == 0
