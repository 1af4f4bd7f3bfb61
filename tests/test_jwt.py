"""
Unit tests for RS256 access token signing and validation.

Covers round trips, the ordered validation checks, clock skew, key loading and the
published JWK Set.
"""

import json
from datetime import datetime, timedelta, timezone

import pytest
from jwcrypto import jwt
from jwcrypto.common import base64url_decode, json_decode

from social.graze.mcpauth.oauth.errors import KeyLoadError
from social.graze.mcpauth.oauth.jwt import JwtService

TEST_ISSUER = "http://mcp.test"


def _issue(service: JwtService, **kwargs) -> str:
    params = {
        "jti": "01JTESTJTI",
        "user_id": 42,
        "client_id": "c1",
        "scopes": ["mcp:read", "mcp:write"],
        "ttl": 3600,
        "username": "alice",
        "roles": ["editor"],
    }
    params.update(kwargs)
    return service.issue(**params)


class TestRoundTrip:
    """Test that issued tokens validate and carry their claims."""

    def test_claims(self, jwt_service):
        token = _issue(jwt_service)
        result = jwt_service.validate(token)

        assert result.valid
        assert result.error is None
        claims = result.claims
        assert claims.jti == "01JTESTJTI"
        assert claims.user_id == 42
        assert claims.client_id == "c1"
        assert claims.scopes == {"mcp:read", "mcp:write"}
        assert claims.username == "alice"
        assert claims.roles == ("editor",)
        assert claims.issuer == TEST_ISSUER
        assert claims.audience == (TEST_ISSUER,)
        assert claims.expires_at - claims.issued_at == 3600

    def test_header(self, jwt_service):
        token = _issue(jwt_service)
        header = json_decode(base64url_decode(token.split(".")[0]))

        assert header["alg"] == "RS256"
        assert header["typ"] == "JWT"
        assert header["kid"] == jwt_service.kid

    def test_sub_is_string(self, jwt_service):
        token = _issue(jwt_service)
        parsed = jwt.JWT(jwt=token, key=jwt_service.public_key)
        assert json.loads(parsed.claims)["sub"] == "42"


class TestValidationFailures:
    """Test each validation step rejects what it should."""

    def test_malformed(self, jwt_service):
        result = jwt_service.validate("not-a-jwt")
        assert not result.valid
        assert result.error.startswith("Invalid token format")

    def test_signed_by_another_key(self, jwt_service, other_rsa_key):
        forger = JwtService(other_rsa_key, other_rsa_key, TEST_ISSUER, TEST_ISSUER)
        result = jwt_service.validate(_issue(forger))
        assert result.error == "Invalid token signature"

    def test_tampered_payload(self, jwt_service):
        header, _, signature = _issue(jwt_service).split(".")
        forged_service_token = _issue(jwt_service, user_id=1)
        _, payload, _ = forged_service_token.split(".")

        result = jwt_service.validate(".".join([header, payload, signature]))
        assert result.error == "Invalid token signature"

    def test_issuer_mismatch(self, jwt_service, rsa_key):
        other = JwtService(rsa_key, rsa_key, "http://elsewhere.test", TEST_ISSUER)
        result = jwt_service.validate(_issue(other))
        assert result.error == "Token issuer mismatch"

    def test_audience_mismatch(self, jwt_service, rsa_key):
        other = JwtService(rsa_key, rsa_key, TEST_ISSUER, "http://other-resource.test")
        result = jwt_service.validate(_issue(other))
        assert result.error == "Token audience mismatch"

    def test_expired(self, jwt_service):
        issued_at = datetime.now(timezone.utc) - timedelta(hours=2)
        result = jwt_service.validate(_issue(jwt_service, issued_at=issued_at))
        assert result.error == "Token has expired"

    def test_not_yet_valid(self, jwt_service):
        issued_at = datetime.now(timezone.utc) + timedelta(hours=1)
        result = jwt_service.validate(_issue(jwt_service, issued_at=issued_at))
        assert result.error == "Token is not yet valid"


class TestLeeway:
    """Test clock skew tolerance around exp and nbf."""

    def test_expiry_within_leeway(self, jwt_service):
        issued_at = datetime(2026, 1, 1, tzinfo=timezone.utc)
        token = _issue(jwt_service, issued_at=issued_at, ttl=60)

        just_expired = issued_at + timedelta(seconds=90)
        assert jwt_service.validate(token, now=just_expired).valid

        long_expired = issued_at + timedelta(seconds=121)
        assert jwt_service.validate(token, now=long_expired).error == "Token has expired"

    def test_nbf_within_leeway(self, jwt_service):
        issued_at = datetime(2026, 1, 1, tzinfo=timezone.utc)
        token = _issue(jwt_service, issued_at=issued_at)

        assert jwt_service.validate(token, now=issued_at - timedelta(seconds=30)).valid
        assert (
            jwt_service.validate(token, now=issued_at - timedelta(seconds=61)).error
            == "Token is not yet valid"
        )


class TestKeys:
    """Test key loading and JWK export."""

    def test_from_files(self, key_files, jwt_service):
        private_path, public_path = key_files
        service = JwtService.from_files(private_path, public_path, TEST_ISSUER, TEST_ISSUER)

        assert service.kid == jwt_service.kid
        assert jwt_service.validate(_issue(service)).valid

    def test_missing_file(self, tmp_path):
        with pytest.raises(KeyLoadError):
            JwtService.from_files(
                str(tmp_path / "missing.pem"),
                str(tmp_path / "missing.pub"),
                TEST_ISSUER,
                TEST_ISSUER,
            )

    def test_garbage_pem(self):
        with pytest.raises(KeyLoadError):
            JwtService.from_pem(b"garbage", b"garbage", TEST_ISSUER, TEST_ISSUER)

    def test_public_key_cannot_sign(self, rsa_key):
        with pytest.raises(KeyLoadError):
            JwtService.from_pem(
                rsa_key.export_to_pem(),
                rsa_key.export_to_pem(),
                TEST_ISSUER,
                TEST_ISSUER,
            )

    def test_mismatched_pair(self, rsa_key, other_rsa_key):
        with pytest.raises(KeyLoadError):
            JwtService.from_pem(
                rsa_key.export_to_pem(private_key=True, password=None),
                other_rsa_key.export_to_pem(),
                TEST_ISSUER,
                TEST_ISSUER,
            )

    def test_export_jwks(self, jwt_service, rsa_key):
        jwks = jwt_service.export_jwks()

        assert len(jwks["keys"]) == 1
        key = jwks["keys"][0]
        assert key["kty"] == "RSA"
        assert key["use"] == "sig"
        assert key["alg"] == "RS256"
        assert key["kid"] == rsa_key.thumbprint()
        assert key["n"] == rsa_key.export_public(as_dict=True)["n"]
        assert "d" not in key
