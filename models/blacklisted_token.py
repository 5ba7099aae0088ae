from sqlalchemy import Column, String, DateTime
from models.base_model import BaseModel, Base


class BlacklistedToken(BaseModel, Base):
    __tablename__ = "blacklisted_tokens"

    jti = Column(String(64), nullable=False, unique=True, index=True)
    # null keeps the entry until removed by hand
    expires_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<BlacklistedToken jti={self.jti}>"
