from sqlalchemy import Column, String, DateTime, ForeignKey, JSON
from ..database import Base
from .tenant import utcnow


class TableRow(Base):
    """One row of a user-defined table, stored as an open JSON document."""

    __tablename__ = "table_rows"

    id = Column(String, primary_key=True)
    table_id = Column(
        String,
        ForeignKey("database_tables.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    data = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f"<TableRow(id='{self.id}', table_id='{self.table_id}')>"
