"""
Unit tests for static user tokens.
"""

from datetime import timedelta

from social.graze.mcpauth.auth.user_tokens import TokenStatus, hash_token
from social.graze.mcpauth.model.base import utcnow


class TestCreate:
    """Test token creation."""

    async def test_plaintext_is_not_stored(self, user_token_store):
        plaintext, record = await user_token_store.create(42, "laptop")

        assert len(plaintext) == 64
        assert record.token_hash == hash_token(plaintext)
        assert record.token_hash != plaintext
        assert record.id is not None
        assert record.label == "laptop"

    async def test_list_for_user(self, user_token_store):
        await user_token_store.create(42, "one")
        await user_token_store.create(42, "two")
        await user_token_store.create(7, "other")

        tokens = await user_token_store.list_for_user(42)
        assert sorted(token.label for token in tokens) == ["one", "two"]


class TestValidate:
    """Test token lookup outcomes."""

    async def test_valid(self, user_token_store):
        plaintext, record = await user_token_store.create(42)
        lookup = await user_token_store.validate(plaintext)

        assert lookup.valid
        assert lookup.token.user_id == 42

    async def test_not_found(self, user_token_store):
        lookup = await user_token_store.validate("f" * 64)
        assert lookup.status is TokenStatus.NOT_FOUND
        assert not lookup.valid

    async def test_expired(self, user_token_store):
        plaintext, _ = await user_token_store.create(7, expires_at=utcnow() - timedelta(days=1))
        lookup = await user_token_store.validate(plaintext)

        assert lookup.status is TokenStatus.EXPIRED
        assert lookup.token.user_id == 7

    async def test_touch(self, user_token_store):
        plaintext, _ = await user_token_store.create(42)
        await user_token_store.touch(plaintext)

        [token] = await user_token_store.list_for_user(42)
        assert token.last_used_at is not None


class TestRevokeAndCleanup:
    """Test removal of tokens."""

    async def test_revoke_requires_owner(self, user_token_store):
        plaintext, record = await user_token_store.create(42)

        assert not await user_token_store.revoke(record.id, 7)
        assert await user_token_store.revoke(record.id, 42)
        assert (await user_token_store.validate(plaintext)).status is TokenStatus.NOT_FOUND

    async def test_cleanup_keeps_non_expiring(self, user_token_store):
        await user_token_store.create(42, "forever")
        await user_token_store.create(42, "live", utcnow() + timedelta(days=1))
        await user_token_store.create(42, "dead", utcnow() - timedelta(days=1))

        assert await user_token_store.cleanup_expired() == 1
        labels = {token.label for token in await user_token_store.list_for_user(42)}
        assert labels == {"forever", "live"}
