"""API Key model."""

from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey
from ..database import Base
from .tenant import utcnow


class APIKey(Base):
    """API key scoping a caller to one tenant database."""

    __tablename__ = "api_keys"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    database_id = Column(
        String, ForeignKey("databases.id", ondelete="CASCADE"), nullable=False
    )
    key_value = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False, default="Default key")
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    last_used_at = Column(DateTime(timezone=True))

    def __repr__(self):
        return f"<APIKey(id='{self.id}', database_id='{self.database_id}')>"
