"""
PKCE (RFC 7636) verification.

A code that was issued without a challenge verifies unconditionally: PKCE is opt-in for
the client. When a challenge is present, the verifier presented at the token endpoint
must match it under the stored method.
"""

import base64
import hashlib
import hmac
import secrets
from typing import Optional, Tuple

METHOD_S256 = "S256"
METHOD_PLAIN = "plain"
SUPPORTED_METHODS = (METHOD_S256, METHOD_PLAIN)


def s256_challenge(verifier: str) -> str:
    hashed = hashlib.sha256(verifier.encode("ascii")).digest()
    encoded = base64.urlsafe_b64encode(hashed)
    return encoded.decode("ascii").rstrip("=")


def generate_pkce_verifier() -> Tuple[str, str]:
    """
    Generate a PKCE verifier and its S256 challenge.

    Mostly useful to clients and tests; the server only ever verifies.

    Returns:
        Tuple[str, str]: (pkce_verifier, pkce_challenge)
    """
    pkce_token = secrets.token_urlsafe(80)
    return (pkce_token, s256_challenge(pkce_token))


def verify_pkce(
    code_challenge: Optional[str], code_challenge_method: Optional[str], verifier: str
) -> bool:
    if not code_challenge:
        return True

    method = code_challenge_method or METHOD_S256
    if method == METHOD_S256:
        try:
            computed = s256_challenge(verifier)
        except UnicodeEncodeError:
            return False
    elif method == METHOD_PLAIN:
        computed = verifier
    else:
        return False

    return hmac.compare_digest(
        code_challenge.encode("utf-8"), computed.encode("utf-8")
    )
