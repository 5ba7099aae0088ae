"""
Token issuer:
- mints signed access tokens (stateless, no store lookup)
- mints opaque refresh tokens and records them in the TokenStore
- rotates refresh tokens single-use, inside the clock-skew grace window
- revokes access tokens through the store's blacklist
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, NamedTuple, Optional, Union, Any, Dict

from models.token_store import TokenStore
from utils.errors import TokenConfigurationError, TokenRevokedError, TokenStorageError
from utils.security import (
    SigningCredentials,
    decode_access_token,
    encode_access_token,
    generate_refresh_token,
)

logger = logging.getLogger(__name__)

# put() collisions are astronomically rare with 256-bit tokens
MAX_REFRESH_TOKEN_ATTEMPTS = 3


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_timedelta(value, default: timedelta) -> timedelta:
    if value is None:
        return default
    if isinstance(value, timedelta):
        return value
    return timedelta(seconds=int(value))


@dataclass(frozen=True)
class TokenSettings:
    """Explicit configuration handed to TokenIssuer once at startup."""

    credentials: Optional[SigningCredentials]
    issuer: str
    audience: str
    access_expiration: timedelta = timedelta(minutes=15)
    refresh_expiration: timedelta = timedelta(days=14)
    clock_skew: timedelta = timedelta(seconds=60)

    @classmethod
    def from_config(cls, config) -> "TokenSettings":
        """Build settings from a Flask-style config mapping.

        Raises TokenConfigurationError when the signing credentials, issuer
        or audience are missing so misconfiguration fails at startup.
        """
        issuer = config.get("JWT_ISSUER")
        audience = config.get("JWT_AUDIENCE")
        if not issuer or not audience:
            raise TokenConfigurationError("JWT_ISSUER and JWT_AUDIENCE are required")
        return cls(
            credentials=SigningCredentials.from_config(config),
            issuer=issuer,
            audience=audience,
            access_expiration=_as_timedelta(config.get("ACCESS_TOKEN_EXPIRES"), cls.access_expiration),
            refresh_expiration=_as_timedelta(config.get("REFRESH_TOKEN_EXPIRES"), cls.refresh_expiration),
            clock_skew=_as_timedelta(config.get("TOKEN_CLOCK_SKEW"), cls.clock_skew),
        )


class TokenPair(NamedTuple):
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class Accepted:
    """Rotation succeeded; the presented token is gone and ``refresh_token`` replaces it."""

    subject: str
    refresh_token: str


@dataclass(frozen=True)
class Rejected:
    """Rotation refused; the caller has no valid refresh token and must log in again.

    reason is "unknown" (never issued, already used or purged) or "not_due"
    (still outside the grace window; consumed all the same).
    """

    reason: str


RotationResult = Union[Accepted, Rejected]


class TokenIssuer:
    """Issues, rotates and revokes tokens against a TokenStore."""

    def __init__(
        self,
        settings: TokenSettings,
        store: TokenStore,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self._clock = clock or _utcnow

    def now(self) -> datetime:
        return self._clock()

    def issue_access_token(
        self,
        subject: str,
        roles: Optional[Iterable[str]] = None,
        expiration: Optional[timedelta] = None,
    ) -> str:
        """Sign a new access token for ``subject``.

        Never touches the store. Raises ValueError on an empty subject and
        TokenConfigurationError when no signing credentials are configured.
        """
        if not subject:
            raise ValueError("subject must be a non-empty string")
        if expiration is None:
            expiration = self.settings.access_expiration

        now = self.now()
        token = encode_access_token(
            self.settings.credentials,
            subject=subject,
            issuer=self.settings.issuer,
            audience=self.settings.audience,
            issued_at=now,
            expires_at=now + expiration,
            roles=roles,
        )
        logger.info("Generated new authorization token")
        return token

    def issue_refresh_token(self, subject: str, expiration: Optional[timedelta] = None) -> str:
        """Create an opaque refresh token and record it before returning it.

        TokenStorageError from the store propagates; no token is handed out
        unless the write succeeded.
        """
        if not subject:
            raise ValueError("subject must be a non-empty string")
        if expiration is None:
            expiration = self.settings.refresh_expiration

        expires_at = self.now() + expiration
        for _ in range(MAX_REFRESH_TOKEN_ATTEMPTS):
            token = generate_refresh_token()
            if self.store.put(token, subject, expires_at):
                logger.info("Generated new refresh token")
                return token
            logger.warning("Refresh token collision, regenerating")
        raise TokenStorageError("Could not store a unique refresh token")

    def issue_token_pair(self, subject: str, roles: Optional[Iterable[str]] = None) -> TokenPair:
        return TokenPair(self.issue_access_token(subject, roles), self.issue_refresh_token(subject))

    def rotate_refresh_token(self, token: str) -> RotationResult:
        """Exchange ``token`` for a new refresh token.

        The presented token is removed first. Rotation is accepted only when
        the stored expiry falls within ``clock_skew`` of now (or has passed);
        a token that is not yet due is rejected and stays consumed.
        """
        record = self.store.take_and_remove(token) if token else None
        if record is None:
            logger.info("Refresh token rejected: unknown or already used")
            return Rejected("unknown")

        if record.expires_at > self.now() + self.settings.clock_skew:
            logger.info("Refresh token rejected: not within rotation window")
            return Rejected("not_due")

        new_token = self.issue_refresh_token(record.subject)
        return Accepted(record.subject, new_token)

    def verify_access_token(self, token: str) -> Dict[str, Any]:
        """Decode an access token and check it against the blacklist."""
        claims = decode_access_token(
            self.settings.credentials,
            token,
            issuer=self.settings.issuer,
            audience=self.settings.audience,
            leeway=self.settings.clock_skew,
        )
        if self.store.is_blacklisted(claims["jti"]):
            raise TokenRevokedError("Token has been revoked")
        return claims

    def revoke_access_token(self, token: str) -> str:
        """Blacklist a signed access token by its jti; expired tokens are accepted."""
        claims = decode_access_token(
            self.settings.credentials,
            token,
            issuer=self.settings.issuer,
            audience=self.settings.audience,
            verify_exp=False,
        )
        jti = claims["jti"]
        expires_at = datetime.fromtimestamp(claims["exp"], tz=timezone.utc)
        self.store.blacklist(jti, expires_at + self.settings.clock_skew)
        logger.info("Blacklisted authorization token jti=%s", jti)
        return jti

    def blacklist(self, jti: str, expires_at: Optional[datetime] = None) -> None:
        self.store.blacklist(jti, expires_at)
        logger.info("Blacklisted authorization token jti=%s", jti)

    def is_blacklisted(self, jti: str) -> bool:
        return self.store.is_blacklisted(jti)

    def revoke_subject(self, subject: str) -> None:
        self.store.purge_all_for_subject(subject)
        logger.info("Purged refresh tokens for subject=%s", subject)

    def purge_expired(self) -> int:
        removed = self.store.purge_expired(self.now())
        if removed:
            logger.info("Purged %d expired token records", removed)
        return removed
