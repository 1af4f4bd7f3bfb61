"""
Unit tests for PKCE verification (RFC 7636).
"""

from social.graze.mcpauth.oauth.pkce import (
    METHOD_PLAIN,
    METHOD_S256,
    generate_pkce_verifier,
    s256_challenge,
    verify_pkce,
)


class TestS256:
    """Test the S256 transform."""

    def test_rfc7636_appendix_b(self):
        """The worked example from RFC 7636 Appendix B."""
        verifier = "dBjftJeZ4CVP-mJ92IGkZr7M8X0wwNjJ1ZsLAWkXS_w"
        assert s256_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_generated_pair_verifies(self):
        verifier, challenge = generate_pkce_verifier()
        assert verify_pkce(challenge, METHOD_S256, verifier)

    def test_wrong_verifier(self):
        _, challenge = generate_pkce_verifier()
        assert not verify_pkce(challenge, METHOD_S256, "not-the-verifier")

    def test_method_defaults_to_s256(self):
        verifier, challenge = generate_pkce_verifier()
        assert verify_pkce(challenge, None, verifier)

    def test_non_ascii_verifier(self):
        _, challenge = generate_pkce_verifier()
        assert not verify_pkce(challenge, METHOD_S256, "vérifier")


class TestPlainAndAbsent:
    """Test the plain method and codes issued without a challenge."""

    def test_plain(self):
        assert verify_pkce("abc", METHOD_PLAIN, "abc")
        assert not verify_pkce("abc", METHOD_PLAIN, "abd")

    def test_no_challenge_always_verifies(self):
        assert verify_pkce(None, METHOD_S256, "")
        assert verify_pkce("", None, "anything")

    def test_unknown_method(self):
        assert not verify_pkce("abc", "S512", "abc")
