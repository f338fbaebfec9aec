"""Tenant namespace models: databases, their tables and column definitions."""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from ..database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Database(Base):
    """A tenant's logical namespace."""

    __tablename__ = "databases"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text)
    status = Column(String, nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    tables = relationship(
        "DatabaseTable", back_populates="database", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Database(id='{self.id}', name='{self.name}')>"


class DatabaseTable(Base):
    """A user-defined table. Names are unique within a database."""

    __tablename__ = "database_tables"
    __table_args__ = (
        UniqueConstraint("database_id", "name", name="uq_database_tables_name"),
    )

    id = Column(String, primary_key=True)
    database_id = Column(
        String,
        ForeignKey("databases.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    database = relationship("Database", back_populates="tables")
    columns = relationship(
        "TableColumn",
        order_by="TableColumn.position",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<DatabaseTable(id='{self.id}', name='{self.name}')>"


class TableColumn(Base):
    """Declared column. Advisory unless column enforcement is switched on."""

    __tablename__ = "table_columns"

    id = Column(String, primary_key=True)
    table_id = Column(
        String,
        ForeignKey("database_tables.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String, nullable=False)
    data_type = Column(String, nullable=False, default="text")
    is_nullable = Column(Boolean, nullable=False, default=True)
    default_value = Column(String)
    position = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow)
