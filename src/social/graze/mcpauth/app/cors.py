from typing import Dict, Iterable, Optional
from urllib.parse import urlparse

PUBLIC_PATH_PREFIXES = ("/.well-known/",)


def parse_allowed_domains(allowed_domains: str) -> set[str]:
    return {domain.strip().rstrip("/") for domain in allowed_domains.split(",") if domain.strip()}


def get_cors_headers(
    origin_value: Optional[str],
    path: str,
    debug: bool,
    allowed_origins: Iterable[str] = (),
) -> Dict[str, str]:
    """Return appropriate CORS headers based on origin and path."""
    allowed_origins = set(allowed_origins)

    allowed_debug_hosts = {
        "localhost",
        "127.0.0.1",
    }

    headers = {
        "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
        "Access-Control-Allow-Headers": (
            "Keep-Alive, User-Agent, X-Requested-With, "
            "If-Modified-Since, Cache-Control, Content-Type, "
            "Authorization, X-MCP-API-Key"
        ),
        "Access-Control-Expose-Headers": "WWW-Authenticate",
        "Vary": "Origin",
    }

    if path.startswith(PUBLIC_PATH_PREFIXES):
        headers["Access-Control-Allow-Origin"] = "*"
    elif origin_value:
        parsed = urlparse(origin_value)
        base = f"{parsed.scheme}://{parsed.netloc}" if parsed.scheme and parsed.netloc else origin_value

        if base in allowed_origins:
            headers["Access-Control-Allow-Origin"] = origin_value
        elif debug and parsed.hostname in allowed_debug_hosts:
            headers["Access-Control-Allow-Origin"] = origin_value

    return headers
