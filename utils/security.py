"""
security helpers:
- Signing credentials for access tokens (HMAC secret or asymmetric key pair)
- JWT creation/verification via PyJWT
- JTI and opaque refresh token generation
"""
from __future__ import annotations

import hashlib
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Any, Iterable, Optional

import jwt

from utils.errors import TokenConfigurationError, TokenExpiredError, InvalidTokenError

HMAC_ALGORITHMS = ("HS256", "HS384", "HS512")


@dataclass(frozen=True)
class SigningCredentials:
    """Key material and algorithm used to sign and verify access tokens."""

    algorithm: str
    signing_key: str
    verification_key: str

    @classmethod
    def from_config(cls, config) -> "SigningCredentials":
        """Build credentials from a config mapping.

        HMAC algorithms use JWT_SECRET for both sides, asymmetric ones need
        JWT_PRIVATE_KEY and JWT_PUBLIC_KEY.
        """
        algorithm = config.get("JWT_ALGORITHM") or "HS256"
        if algorithm in HMAC_ALGORITHMS:
            secret = config.get("JWT_SECRET")
            if not secret:
                raise TokenConfigurationError(
                    f"JWT_SECRET is required for {algorithm} signing"
                )
            return cls(algorithm, secret, secret)

        private_key = config.get("JWT_PRIVATE_KEY")
        public_key = config.get("JWT_PUBLIC_KEY")
        if not private_key or not public_key:
            raise TokenConfigurationError(
                f"JWT_PRIVATE_KEY and JWT_PUBLIC_KEY are required for {algorithm} signing"
            )
        return cls(algorithm, private_key, public_key)


def generate_jti() -> str:
    """Generate a unique JTI (JWT ID).
    """
    return str(uuid.uuid4())


def generate_refresh_token() -> str:
    """Generate an opaque refresh token (bearer secret, no embedded claims)."""
    return secrets.token_urlsafe(32)


def hash_refresh_token(token: str) -> str:
    """SHA-256 hex digest used to persist refresh tokens at rest."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def normalize_roles(roles: Optional[Iterable[str]]) -> list[str]:
    """Deduplicate roles; order of the input is irrelevant."""
    if not roles:
        return []
    if isinstance(roles, str):
        # a single role, not an iterable of characters
        roles = [roles]
    return sorted({str(role) for role in roles})


def encode_access_token(
    credentials: Optional[SigningCredentials],
    subject: str,
    issuer: str,
    audience: str,
    issued_at: datetime,
    expires_at: datetime,
    roles: Optional[Iterable[str]] = None,
    jti: Optional[str] = None,
) -> str:
    """Sign an access token carrying the standard identity claims."""
    if credentials is None or not credentials.signing_key:
        raise TokenConfigurationError("No signing credentials configured")

    payload = {
        "iss": issuer,
        "aud": audience,
        "sub": str(subject),
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
        "type": "access",
        "jti": jti or generate_jti(),
    }
    role_claims = normalize_roles(roles)
    if role_claims:
        payload["roles"] = role_claims
    return jwt.encode(payload, credentials.signing_key, algorithm=credentials.algorithm)


def decode_access_token(
    credentials: Optional[SigningCredentials],
    token: str,
    issuer: str,
    audience: str,
    leeway: timedelta = timedelta(0),
    verify_exp: bool = True,
) -> Dict[str, Any]:
    """
    Decode and validate an access token. Raises TokenExpiredError or
    InvalidTokenError on expired/invalid tokens.
    """
    if credentials is None or not credentials.verification_key:
        raise TokenConfigurationError("No verification key configured")
    try:
        decoded = jwt.decode(
            token,
            credentials.verification_key,
            algorithms=[credentials.algorithm],
            audience=audience,
            issuer=issuer,
            leeway=leeway,
            options={"require": ["exp", "sub", "jti"], "verify_exp": verify_exp},
        )
    except jwt.ExpiredSignatureError as exc:
        raise TokenExpiredError("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise InvalidTokenError(f"Invalid token: {exc}") from exc

    if decoded.get("type") != "access":
        raise InvalidTokenError("Wrong token type")
    return decoded
