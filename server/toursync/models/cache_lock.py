"""Database-backed named lock rows."""

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


class CacheLock(Base):
    """A named lock owned by one holder until ``expiration``."""

    __tablename__ = "cache_locks"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    owner: Mapped[str] = mapped_column(String(64), nullable=False)
    expiration: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    def is_expired(self, now: datetime) -> bool:
        return self.expiration <= now

    def __repr__(self) -> str:
        return f"<CacheLock(key='{self.key}', expiration={self.expiration})>"
