from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class RefreshTokenRecord:
    """Stored refresh token metadata."""

    token: str
    subject: str
    expires_at: datetime


class TokenStore:
    """Abstract interface for refresh token and revocation persistence.

    Implementations are the single source of truth for refresh token validity
    and access token revocation. ``take_and_remove`` must be atomic: when
    several callers present the same token, exactly one gets the record back.
    """

    def put(self, token: str, subject: str, expires_at: datetime) -> bool:  # pragma: no cover - interface
        """Insert a refresh token record.

        Returns False if the token value is already present, so the caller
        can regenerate. Storage failures raise TokenStorageError.
        """
        raise NotImplementedError

    def take_and_remove(self, token: str) -> Optional[RefreshTokenRecord]:  # pragma: no cover - interface
        raise NotImplementedError

    def purge_all_for_subject(self, subject: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def blacklist(self, jti: str, expires_at: Optional[datetime] = None) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def is_blacklisted(self, jti: str) -> bool:  # pragma: no cover - interface
        raise NotImplementedError

    def purge_expired(self, now: datetime) -> int:  # pragma: no cover - interface
        """Drop expired refresh records and lapsed revocation entries."""
        raise NotImplementedError


class InMemoryTokenStore(TokenStore):
    """In-memory token store for development and testing.

    Every operation runs under a single lock, which makes take_and_remove
    atomic across threads. This is not suitable for multi-process
    deployments; use SQLTokenStore there.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._refresh_tokens: dict[str, RefreshTokenRecord] = {}
        self._blacklist: dict[str, Optional[datetime]] = {}

    def put(self, token: str, subject: str, expires_at: datetime) -> bool:
        with self._lock:
            if token in self._refresh_tokens:
                return False
            self._refresh_tokens[token] = RefreshTokenRecord(token, subject, expires_at)
            return True

    def take_and_remove(self, token: str) -> Optional[RefreshTokenRecord]:
        with self._lock:
            return self._refresh_tokens.pop(token, None)

    def purge_all_for_subject(self, subject: str) -> None:
        with self._lock:
            stale = [t for t, rec in self._refresh_tokens.items() if rec.subject == subject]
            for token in stale:
                del self._refresh_tokens[token]

    def blacklist(self, jti: str, expires_at: Optional[datetime] = None) -> None:
        with self._lock:
            # keep the longest known lifetime; None never lapses
            if jti in self._blacklist:
                current = self._blacklist[jti]
                if current is None or expires_at is None:
                    self._blacklist[jti] = None
                else:
                    self._blacklist[jti] = max(current, expires_at)
            else:
                self._blacklist[jti] = expires_at

    def is_blacklisted(self, jti: str) -> bool:
        with self._lock:
            return jti in self._blacklist

    def purge_expired(self, now: datetime) -> int:
        with self._lock:
            expired_tokens = [t for t, rec in self._refresh_tokens.items() if rec.expires_at < now]
            for token in expired_tokens:
                del self._refresh_tokens[token]
            lapsed = [j for j, exp in self._blacklist.items() if exp is not None and exp < now]
            for jti in lapsed:
                del self._blacklist[jti]
            return len(expired_tokens) + len(lapsed)
