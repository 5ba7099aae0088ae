"""
RefreshToken model: one row per live refresh token, so rotation can consume it exactly once
Fields:
- token_hash (unique) - SHA-256 of the opaque token; the token itself is never stored
- subject - identity the token was issued to
- expires_at
"""
from sqlalchemy import Column, String, DateTime
from models.base_model import BaseModel, Base


class RefreshToken(BaseModel, Base):
    __tablename__ = "refresh_tokens"

    token_hash = Column(String(64), nullable=False, unique=True, index=True)
    subject = Column(String(255), nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)

    def __repr__(self):
        return f"<RefreshToken subject={self.subject} expires_at={self.expires_at}>"
