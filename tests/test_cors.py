"""
Unit tests for CORS header selection.
"""

from social.graze.mcpauth.app.cors import get_cors_headers, parse_allowed_domains

ALLOWED = parse_allowed_domains("https://app.test, https://other.test/")


class TestCorsHeaders:
    def test_parse_allowed_domains(self):
        assert ALLOWED == {"https://app.test", "https://other.test"}

    def test_discovery_is_public(self):
        headers = get_cors_headers(None, "/.well-known/jwks.json", False, ALLOWED)
        assert headers["Access-Control-Allow-Origin"] == "*"

    def test_allowed_origin_is_echoed(self):
        headers = get_cors_headers("https://app.test", "/internal/api/me", False, ALLOWED)
        assert headers["Access-Control-Allow-Origin"] == "https://app.test"
        assert "WWW-Authenticate" in headers["Access-Control-Expose-Headers"]

    def test_unknown_origin(self):
        headers = get_cors_headers("https://evil.test", "/internal/api/me", False, ALLOWED)
        assert "Access-Control-Allow-Origin" not in headers

    def test_localhost_only_in_debug(self):
        origin = "http://localhost:3000"
        assert "Access-Control-Allow-Origin" not in get_cors_headers(
            origin, "/internal/api/me", False, ALLOWED
        )
        assert (
            get_cors_headers(origin, "/internal/api/me", True, ALLOWED)[
                "Access-Control-Allow-Origin"
            ]
            == origin
        )
