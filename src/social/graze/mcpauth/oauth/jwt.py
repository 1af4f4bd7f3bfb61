"""
RS256 access token signing and validation.

Access tokens are JWTs signed with the server's RSA private key and verified with the
matching public key, so any process holding the public key can validate them without
shared state. The public half is published as a JWK Set.

Validation runs in a fixed order and stops at the first failure:

1. Parse. Malformed input is a format error.
2. Verify the RS256 signature against the configured public key.
3. `iss` must equal the configured issuer.
4. `aud` must be, or contain, the configured resource identifier.
5. `nbf <= now < exp`, allowing `leeway` seconds of clock skew either side.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Iterable, Optional, Tuple

from jwcrypto import jwk, jwt
from jwcrypto.common import JWException

from social.graze.mcpauth.oauth.errors import KeyLoadError

logger = logging.getLogger(__name__)

ALGORITHM = "RS256"


@dataclass(frozen=True)
class TokenClaims:
    jti: str
    user_id: int
    client_id: str
    scopes: FrozenSet[str]
    username: str
    roles: Tuple[str, ...]
    issuer: str
    audience: Tuple[str, ...]
    issued_at: int
    not_before: int
    expires_at: int


@dataclass(frozen=True)
class TokenValidation:
    claims: Optional[TokenClaims] = None
    error: Optional[str] = None

    @property
    def valid(self) -> bool:
        return self.claims is not None and self.error is None

    @staticmethod
    def failed(error: str) -> "TokenValidation":
        return TokenValidation(error=error)


def _read_key(path: str, private: bool) -> jwk.JWK:
    try:
        with open(path, "rb") as fd:
            data = fd.read()
    except OSError as e:
        raise KeyLoadError(f"Unable to read key file {path}: {e}") from e
    return _load_pem(data, private, path)


def _load_pem(data: bytes, private: bool, source: str) -> jwk.JWK:
    try:
        key = jwk.JWK.from_pem(data)
    except (ValueError, TypeError, JWException) as e:
        raise KeyLoadError(f"Unable to parse key {source}: {e}") from e

    if key.get("kty") != "RSA":
        raise KeyLoadError(f"Key {source} is not an RSA key")
    if private and not key.has_private:
        raise KeyLoadError(f"Key {source} does not contain a private key")
    return key


@dataclass
class JwtService:
    """Signs and validates access tokens for a single issuer and audience."""

    private_key: jwk.JWK
    public_key: jwk.JWK
    issuer: str
    audience: str
    leeway: int = 60
    kid: str = field(init=False)

    def __post_init__(self) -> None:
        self.kid = self.public_key.thumbprint()
        if self.private_key.thumbprint() != self.kid:
            raise KeyLoadError("Private and public keys do not form a pair")

    @classmethod
    def from_pem(
        cls,
        private_pem: bytes,
        public_pem: bytes,
        issuer: str,
        audience: str,
        leeway: int = 60,
    ) -> "JwtService":
        return cls(
            private_key=_load_pem(private_pem, True, "private key"),
            public_key=_load_pem(public_pem, False, "public key"),
            issuer=issuer,
            audience=audience,
            leeway=leeway,
        )

    @classmethod
    def from_files(
        cls,
        private_key_path: str,
        public_key_path: str,
        issuer: str,
        audience: str,
        leeway: int = 60,
    ) -> "JwtService":
        service = cls(
            private_key=_read_key(private_key_path, True),
            public_key=_read_key(public_key_path, False),
            issuer=issuer,
            audience=audience,
            leeway=leeway,
        )
        logger.info("loaded signing key kid=%s", service.kid)
        return service

    def issue(
        self,
        jti: str,
        user_id: int,
        client_id: str,
        scopes: Iterable[str],
        ttl: int,
        username: str = "",
        roles: Iterable[str] = (),
        issued_at: Optional[datetime] = None,
    ) -> str:
        if issued_at is None:
            issued_at = datetime.now(timezone.utc)
        iat = int(issued_at.timestamp())

        claims: Dict[str, Any] = {
            "iss": self.issuer,
            "aud": self.audience,
            "sub": str(user_id),
            "jti": jti,
            "iat": iat,
            "nbf": iat,
            "exp": iat + ttl,
            "client_id": client_id,
            "scope": " ".join(scopes),
            "username": username,
            "roles": list(roles),
        }
        header = {"alg": ALGORITHM, "typ": "JWT", "kid": self.kid}

        token = jwt.JWT(header=header, claims=claims)
        token.make_signed_token(self.private_key)
        return token.serialize()

    def validate(self, token: str, now: Optional[datetime] = None) -> TokenValidation:
        parsed = jwt.JWT(algs=[ALGORITHM], check_claims=False, expected_type="JWS")
        try:
            parsed.deserialize(token)
        except (ValueError, TypeError, JWException) as e:
            return TokenValidation.failed(f"Invalid token format: {e}")

        try:
            parsed.validate(self.public_key)
        except (ValueError, TypeError, JWException):
            return TokenValidation.failed("Invalid token signature")

        try:
            claims = json.loads(parsed.claims)
        except ValueError as e:
            return TokenValidation.failed(f"Invalid token format: {e}")
        if not isinstance(claims, dict):
            return TokenValidation.failed("Invalid token format: claims are not an object")

        if claims.get("iss") != self.issuer:
            return TokenValidation.failed("Token issuer mismatch")

        aud = claims.get("aud")
        audience = (aud,) if isinstance(aud, str) else tuple(aud or ())
        if self.audience not in audience:
            return TokenValidation.failed("Token audience mismatch")

        if now is None:
            now = datetime.now(timezone.utc)
        timestamp = now.timestamp()
        try:
            nbf = int(claims.get("nbf", claims.get("iat", 0)))
            exp = int(claims["exp"])
            iat = int(claims.get("iat", nbf))
        except (KeyError, TypeError, ValueError):
            return TokenValidation.failed("Token has invalid time claims")

        if timestamp + self.leeway < nbf:
            return TokenValidation.failed("Token is not yet valid")
        if timestamp - self.leeway >= exp:
            return TokenValidation.failed("Token has expired")

        try:
            user_id = int(claims["sub"])
        except (KeyError, TypeError, ValueError):
            return TokenValidation.failed("Token has invalid subject")

        return TokenValidation(
            claims=TokenClaims(
                jti=str(claims.get("jti", "")),
                user_id=user_id,
                client_id=str(claims.get("client_id", "")),
                scopes=frozenset(str(claims.get("scope", "")).split()),
                username=str(claims.get("username", "")),
                roles=tuple(claims.get("roles") or ()),
                issuer=claims["iss"],
                audience=audience,
                issued_at=iat,
                not_before=nbf,
                expires_at=exp,
            )
        )

    def export_jwk(self) -> Dict[str, str]:
        public = self.public_key.export_public(as_dict=True)
        return {
            "kty": "RSA",
            "use": "sig",
            "alg": ALGORITHM,
            "kid": self.kid,
            "n": public["n"],
            "e": public["e"],
        }

    def export_jwks(self) -> Dict[str, Any]:
        return {"keys": [self.export_jwk()]}
