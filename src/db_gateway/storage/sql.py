"""Relational backend on SQLAlchemy.

Each operation opens its own short-lived session so the store can be shared
across requests and used from background tasks after the response is sent.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from sqlalchemy import String, case, cast, func, literal, null, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..errors import Conflict, StorageFailure
from ..models import APIKey, Database, DatabaseTable, QueryLog, TableColumn, TableRow
from ..models.tenant import utcnow
from ..schemas import (
    APIKeyRecord,
    ColumnDefinition,
    DatabaseRecord,
    QueryLogRecord,
    RowRecord,
    TableRecord,
)
from .base import KEY_FIELDS, StorageBackend, new_id

logger = logging.getLogger(__name__)


def _sqlite_field_equals(key: str, text: str):
    """EXISTS over ``json_each(data)``: one top-level key whose value reads as ``text``.

    The key is compared as a bound value, never spliced into a JSON path.
    Values render the way ``as_filter_text`` does, booleans as true/false.
    """
    entry = func.json_each(TableRow.data).table_valued("key", "value", "type")
    rendered = case(
        (entry.c["type"] == "true", literal("true")),
        (entry.c["type"] == "false", literal("false")),
        (entry.c["type"] == "text", entry.c["value"]),
        (entry.c["type"].in_(["integer", "real"]), cast(entry.c["value"], String)),
        (entry.c["type"].in_(["object", "array"]), func.json(entry.c["value"])),
        else_=null(),
    )
    return select(entry.c["key"]).where(entry.c["key"] == key, rendered == text).exists()


class SQLStore(StorageBackend):
    """Backend for the networked relational deployment."""

    name = "sql"

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @contextmanager
    def _session(self):
        db: Session = self.session_factory()
        try:
            yield db
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Storage error: {e}")
            raise StorageFailure() from e
        finally:
            db.close()

    # -- API keys -----------------------------------------------------------

    def get_key_by_value(self, key_value: str) -> Optional[APIKeyRecord]:
        with self._session() as db:
            row = db.query(APIKey).filter(APIKey.key_value == key_value).first()
            return APIKeyRecord.model_validate(row) if row else None

    def get_key(self, key_id: str) -> Optional[APIKeyRecord]:
        with self._session() as db:
            row = db.get(APIKey, key_id)
            return APIKeyRecord.model_validate(row) if row else None

    def list_keys(self, database_id: Optional[str] = None) -> List[APIKeyRecord]:
        with self._session() as db:
            query = db.query(APIKey)
            if database_id:
                query = query.filter(APIKey.database_id == database_id)
            return [
                APIKeyRecord.model_validate(k)
                for k in query.order_by(APIKey.created_at).all()
            ]

    def create_key(self, record: APIKeyRecord) -> APIKeyRecord:
        with self._session() as db:
            api_key = APIKey(**record.model_dump(exclude_none=True))
            db.add(api_key)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                raise Conflict("API key already exists")
            db.refresh(api_key)
            return APIKeyRecord.model_validate(api_key)

    def update_key(self, key_id: str, **fields) -> Optional[APIKeyRecord]:
        unknown = set(fields) - KEY_FIELDS
        if unknown:
            raise ValueError(f"Cannot update API key fields: {sorted(unknown)}")

        with self._session() as db:
            api_key = db.get(APIKey, key_id)
            if api_key is None:
                return None
            for field, value in fields.items():
                setattr(api_key, field, value)
            db.commit()
            db.refresh(api_key)
            return APIKeyRecord.model_validate(api_key)

    def delete_key(self, key_id: str) -> bool:
        with self._session() as db:
            deleted = (
                db.query(APIKey)
                .filter(APIKey.id == key_id)
                .delete(synchronize_session=False)
            )
            db.commit()
            return deleted > 0

    # -- Databases, tables and columns --------------------------------------

    def create_database(self, record: DatabaseRecord) -> DatabaseRecord:
        with self._session() as db:
            database = Database(**record.model_dump(exclude_none=True))
            db.add(database)
            db.commit()
            db.refresh(database)
            return DatabaseRecord.model_validate(database)

    def get_database(self, database_id: str) -> Optional[DatabaseRecord]:
        with self._session() as db:
            database = db.get(Database, database_id)
            return DatabaseRecord.model_validate(database) if database else None

    def list_databases(self, user_id: Optional[str] = None) -> List[DatabaseRecord]:
        with self._session() as db:
            query = db.query(Database)
            if user_id:
                query = query.filter(Database.user_id == user_id)
            return [
                DatabaseRecord.model_validate(d)
                for d in query.order_by(Database.name).all()
            ]

    def create_table(
        self, database_id: str, name: str, columns: List[ColumnDefinition]
    ) -> TableRecord:
        with self._session() as db:
            table = DatabaseTable(id=new_id(), database_id=database_id, name=name)
            for position, column in enumerate(columns):
                table.columns.append(
                    TableColumn(
                        id=new_id(),
                        name=column.name,
                        data_type=column.data_type,
                        is_nullable=column.is_nullable,
                        default_value=column.default_value,
                        position=position,
                    )
                )
            db.add(table)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                raise Conflict(f'Table "{name}" already exists')
            db.refresh(table)
            return TableRecord.model_validate(table)

    def find_table(self, database_id: str, name: str) -> Optional[TableRecord]:
        with self._session() as db:
            table = (
                db.query(DatabaseTable)
                .filter(
                    DatabaseTable.database_id == database_id,
                    DatabaseTable.name == name,
                )
                .first()
            )
            return TableRecord.model_validate(table) if table else None

    def list_tables(self, database_id: str) -> List[TableRecord]:
        with self._session() as db:
            tables = (
                db.query(DatabaseTable)
                .filter(DatabaseTable.database_id == database_id)
                .order_by(DatabaseTable.name)
                .all()
            )
            return [TableRecord.model_validate(t) for t in tables]

    def list_columns(self, table_id: str) -> List[ColumnDefinition]:
        with self._session() as db:
            columns = (
                db.query(TableColumn)
                .filter(TableColumn.table_id == table_id)
                .order_by(TableColumn.position)
                .all()
            )
            return [ColumnDefinition.model_validate(c) for c in columns]

    # -- Rows ---------------------------------------------------------------

    def select_rows(
        self, table_id: str, filters: Dict[str, str], limit: int, offset: int = 0
    ) -> List[RowRecord]:
        with self._session() as db:
            query = db.query(TableRow).filter(TableRow.table_id == table_id)
            sqlite = db.get_bind().dialect.name == "sqlite"
            for key, text in filters.items():
                if sqlite:
                    query = query.filter(_sqlite_field_equals(key, text))
                else:
                    # ->> renders booleans as true/false and takes the key as a bind
                    query = query.filter(
                        cast(TableRow.data[key].as_string(), String) == text
                    )
            rows = (
                query.order_by(TableRow.created_at, TableRow.id)
                .offset(offset)
                .limit(limit)
                .all()
            )
            return [RowRecord.model_validate(r) for r in rows]

    def get_row(self, table_id: str, row_id: str) -> Optional[RowRecord]:
        with self._session() as db:
            row = (
                db.query(TableRow)
                .filter(TableRow.id == row_id, TableRow.table_id == table_id)
                .first()
            )
            return RowRecord.model_validate(row) if row else None

    def insert_row(self, table_id: str, data: Dict[str, Any]) -> RowRecord:
        with self._session() as db:
            now = utcnow()
            row = TableRow(
                id=new_id(),
                table_id=table_id,
                data=data,
                created_at=now,
                updated_at=now,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return RowRecord.model_validate(row)

    def replace_row_data(
        self, table_id: str, row_id: str, data: Dict[str, Any]
    ) -> Optional[RowRecord]:
        with self._session() as db:
            row = (
                db.query(TableRow)
                .filter(TableRow.id == row_id, TableRow.table_id == table_id)
                .first()
            )
            if row is None:
                return None
            row.data = data
            row.updated_at = utcnow()
            db.commit()
            db.refresh(row)
            return RowRecord.model_validate(row)

    def delete_row(self, table_id: str, row_id: str) -> bool:
        with self._session() as db:
            deleted = (
                db.query(TableRow)
                .filter(TableRow.id == row_id, TableRow.table_id == table_id)
                .delete(synchronize_session=False)
            )
            db.commit()
            return deleted > 0

    # -- Query logs ---------------------------------------------------------

    def append_query_log(self, record: QueryLogRecord) -> None:
        with self._session() as db:
            db.add(QueryLog(**record.model_dump(exclude_none=True)))
            db.commit()

    def list_query_logs(
        self,
        database_id: Optional[str] = None,
        method: Optional[str] = None,
        limit: int = 200,
    ) -> List[QueryLogRecord]:
        with self._session() as db:
            query = db.query(QueryLog)
            if database_id:
                query = query.filter(QueryLog.database_id == database_id)
            if method:
                query = query.filter(QueryLog.method == method)
            logs = query.order_by(QueryLog.created_at.desc()).limit(limit).all()
            return [QueryLogRecord.model_validate(log) for log in logs]

    def clear_query_logs(self) -> int:
        with self._session() as db:
            deleted = db.query(QueryLog).delete(synchronize_session=False)
            db.commit()
            return deleted
