from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, JSON
from ..database import Base
from .tenant import utcnow


class QueryLog(Base):
    """Audit entry written for every authenticated gateway call."""

    __tablename__ = "query_logs"

    id = Column(String, primary_key=True)
    database_id = Column(
        String,
        ForeignKey("databases.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(String, nullable=False)

    # Request details
    method = Column(String, nullable=False)
    endpoint = Column(String, nullable=False)
    status_code = Column(Integer, nullable=False, default=200)
    response_time_ms = Column(Integer)

    # Request snapshot, never includes the API key
    request_body = Column(JSON)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    def __repr__(self):
        return f"<QueryLog(id='{self.id}', method='{self.method}', status={self.status_code})>"
