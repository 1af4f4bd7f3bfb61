"""
Unit tests for the OAuth client store.

Covers registration, bcrypt secret verification, exact redirect URI matching and
client removal.
"""

import pytest

from social.graze.mcpauth.oauth.clients import check_secret, hash_secret
from social.graze.mcpauth.oauth.errors import ClientNotFound, DuplicateClient


class TestSecretHashing:
    """Test the bcrypt helpers."""

    def test_hash_is_not_plaintext(self):
        hashed = hash_secret("s1", rounds=4)
        assert hashed != "s1"
        assert hashed.startswith("$2")

    def test_check(self):
        hashed = hash_secret("s1", rounds=4)
        assert check_secret("s1", hashed)
        assert not check_secret("s2", hashed)

    def test_malformed_hash(self):
        assert not check_secret("s1", "not-a-bcrypt-hash")


class TestRegister:
    """Test client registration."""

    async def test_register_and_lookup(self, client_store, registered_client):
        client = await client_store.lookup("c1")

        assert client.name == "Test Client"
        assert client.redirect_uris == ["https://app.test/cb"]
        assert client.is_confidential
        assert client.client_secret_hash != "s1"

    async def test_duplicate(self, client_store, registered_client):
        with pytest.raises(DuplicateClient):
            await client_store.register("c1", "other", "Again", ["https://app.test/cb"])

    async def test_redirect_uris_deduplicated(self, client_store):
        client = await client_store.register(
            "c2", "s2", "Dupes", ["https://a.test/cb", "https://a.test/cb", "https://b.test/cb"]
        )
        assert client.redirect_uris == ["https://a.test/cb", "https://b.test/cb"]

    async def test_lookup_missing(self, client_store):
        with pytest.raises(ClientNotFound):
            await client_store.lookup("nobody")
        assert await client_store.get("nobody") is None


class TestVerify:
    """Test credential and redirect URI checks."""

    async def test_credentials(self, client_store, registered_client):
        assert await client_store.verify_credentials("c1", "s1")
        assert not await client_store.verify_credentials("c1", "wrong")

    async def test_unknown_client_does_not_raise(self, client_store):
        assert not await client_store.verify_credentials("nobody", "s1")

    async def test_redirect_uri_exact_match(self, client_store, registered_client):
        assert await client_store.verify_redirect_uri("c1", "https://app.test/cb")
        assert not await client_store.verify_redirect_uri("c1", "https://app.test/cb/")
        assert not await client_store.verify_redirect_uri("c1", "https://app.test/cb?x=1")
        assert not await client_store.verify_redirect_uri("c1", "https://app.test")
        assert not await client_store.verify_redirect_uri("nobody", "https://app.test/cb")


class TestDeleteAndList:
    """Test listing and deleting clients."""

    async def test_list(self, client_store, registered_client):
        await client_store.register("c2", "s2", "Second", ["https://two.test/cb"])
        clients = await client_store.list_clients()
        assert {client.client_id for client in clients} == {"c1", "c2"}

    async def test_delete(self, client_store, registered_client):
        assert await client_store.delete("c1")
        assert await client_store.get("c1") is None
        assert not await client_store.delete("c1")
