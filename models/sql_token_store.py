"""
SQLTokenStore: TokenStore backed by the refresh_tokens and blacklisted_tokens tables.

Refresh tokens are stored as SHA-256 digests. take_and_remove reads the row,
then issues a conditional DELETE; only the caller whose DELETE hits a row gets
the record back, so concurrent presentations of one token cannot both win.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models.base_model import as_utc
from models.blacklisted_token import BlacklistedToken
from models.db_storage import DBStorage
from models.refresh_token import RefreshToken
from models.token_store import RefreshTokenRecord, TokenStore
from utils.errors import TokenStorageError
from utils.security import hash_refresh_token


def _to_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SQLTokenStore(TokenStore):
    def __init__(self, storage: DBStorage) -> None:
        self.storage = storage

    def put(self, token: str, subject: str, expires_at: datetime) -> bool:
        self.storage.new(
            RefreshToken(
                token_hash=hash_refresh_token(token),
                subject=subject,
                expires_at=_to_utc(expires_at),
            )
        )
        try:
            self.storage.save()
        except IntegrityError:
            # duplicate token_hash; the caller regenerates
            return False
        except SQLAlchemyError as exc:
            self.storage.rollback()
            raise TokenStorageError("Failed to store refresh token") from exc
        return True

    def take_and_remove(self, token: str) -> Optional[RefreshTokenRecord]:
        token_hash = hash_refresh_token(token)
        session = self.storage.get_session()
        try:
            row = (
                session.query(RefreshToken.subject, RefreshToken.expires_at)
                .filter(RefreshToken.token_hash == token_hash)
                .first()
            )
            if row is None:
                self.storage.rollback()
                return None
            deleted = (
                session.query(RefreshToken)
                .filter(RefreshToken.token_hash == token_hash)
                .delete(synchronize_session=False)
            )
            self.storage.save()
        except SQLAlchemyError as exc:
            self.storage.rollback()
            raise TokenStorageError("Failed to consume refresh token") from exc

        if deleted != 1:
            # another caller consumed it between our read and delete
            return None
        return RefreshTokenRecord(token, row.subject, as_utc(row.expires_at))

    def purge_all_for_subject(self, subject: str) -> None:
        session = self.storage.get_session()
        try:
            session.query(RefreshToken).filter(RefreshToken.subject == subject).delete(
                synchronize_session=False
            )
            self.storage.save()
        except SQLAlchemyError as exc:
            self.storage.rollback()
            raise TokenStorageError("Failed to purge refresh tokens") from exc

    def blacklist(self, jti: str, expires_at: Optional[datetime] = None) -> None:
        session = self.storage.get_session()
        expires_at = _to_utc(expires_at)
        try:
            entry = session.query(BlacklistedToken).filter(BlacklistedToken.jti == jti).first()
            if entry is None:
                self.storage.new(BlacklistedToken(jti=jti, expires_at=expires_at))
            elif entry.expires_at is not None:
                if expires_at is None or expires_at > as_utc(entry.expires_at):
                    entry.expires_at = expires_at
            self.storage.save()
        except IntegrityError:
            # a concurrent blacklist() inserted the same jti first
            return
        except SQLAlchemyError as exc:
            self.storage.rollback()
            raise TokenStorageError("Failed to blacklist token") from exc

    def is_blacklisted(self, jti: str) -> bool:
        session = self.storage.get_session()
        try:
            found = (
                session.query(BlacklistedToken.id).filter(BlacklistedToken.jti == jti).first()
                is not None
            )
            # end the read transaction so later commits from other sessions are visible
            self.storage.rollback()
            return found
        except SQLAlchemyError as exc:
            self.storage.rollback()
            raise TokenStorageError("Failed to read blacklist") from exc

    def purge_expired(self, now: datetime) -> int:
        session = self.storage.get_session()
        now = _to_utc(now)
        try:
            removed = (
                session.query(RefreshToken)
                .filter(RefreshToken.expires_at < now)
                .delete(synchronize_session=False)
            )
            removed += (
                session.query(BlacklistedToken)
                .filter(BlacklistedToken.expires_at.isnot(None), BlacklistedToken.expires_at < now)
                .delete(synchronize_session=False)
            )
            self.storage.save()
        except SQLAlchemyError as exc:
            self.storage.rollback()
            raise TokenStorageError("Failed to purge expired tokens") from exc
        return removed
