"""Management surface used by the dashboard and admin console.

Every route requires the ``X-Admin-Key`` header. The gateway itself only reads
what is created here.
"""

from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel

from ..errors import InvalidPayload, NotFound
from ..schemas import (
    APIKeyRecord,
    APIKeyRequest,
    APIKeyToggle,
    ColumnDefinition,
    DatabaseCreate,
    DatabaseRecord,
    QueryLogRecord,
    TableCreate,
    TableRecord,
)
from ..storage import StorageBackend, get_store
from ..storage.base import new_id
from ..utils.auth import APIKeyManager
from ..utils.schema import SchemaResolver
from .dependencies import get_key_manager, require_admin

router = APIRouter(
    prefix="/admin", tags=["Admin"], dependencies=[Depends(require_admin)]
)

DATA_TYPES = ("text", "integer", "boolean", "timestamp", "uuid", "jsonb", "float")


class TableDetail(TableRecord):
    columns: List[ColumnDefinition]


def _require_database(store: StorageBackend, database_id: str) -> DatabaseRecord:
    database = store.get_database(database_id)
    if database is None:
        raise NotFound(f'Database "{database_id}" not found')
    return database


# -- Databases and tables ----------------------------------------------------


@router.post("/databases", response_model=DatabaseRecord, status_code=201)
async def create_database(
    request: DatabaseCreate, store: StorageBackend = Depends(get_store)
):
    """Create a tenant database."""
    return store.create_database(
        DatabaseRecord(
            id=new_id(),
            user_id=request.user_id,
            name=request.name,
            description=request.description,
        )
    )


@router.get("/databases", response_model=List[DatabaseRecord])
async def list_databases(
    user_id: Optional[str] = Query(None), store: StorageBackend = Depends(get_store)
):
    return store.list_databases(user_id)


@router.post(
    "/databases/{database_id}/tables", response_model=TableDetail, status_code=201
)
async def create_table(
    database_id: str, request: TableCreate, store: StorageBackend = Depends(get_store)
):
    """Create a table and its column definitions. Names are unique per database."""
    _require_database(store, database_id)

    unknown = [c.data_type for c in request.columns if c.data_type not in DATA_TYPES]
    if unknown:
        raise InvalidPayload(
            f"Unsupported data type(s): {', '.join(unknown)}. Use: {', '.join(DATA_TYPES)}"
        )

    table = store.create_table(database_id, request.name, request.columns)
    return TableDetail(**table.model_dump(), columns=store.list_columns(table.id))


@router.get("/databases/{database_id}/tables", response_model=List[TableRecord])
async def list_tables(database_id: str, store: StorageBackend = Depends(get_store)):
    _require_database(store, database_id)
    return store.list_tables(database_id)


@router.get(
    "/databases/{database_id}/tables/{table_name}", response_model=TableDetail
)
async def get_table(
    database_id: str, table_name: str, store: StorageBackend = Depends(get_store)
):
    """Table metadata with its columns in position order."""
    resolver = SchemaResolver(store)
    table = resolver.resolve(database_id, table_name)
    return TableDetail(**table.model_dump(), columns=resolver.columns(table.id))


# -- API keys ----------------------------------------------------------------


@router.post("/api-keys", response_model=APIKeyRecord, status_code=201)
async def create_api_key(
    request: APIKeyRequest,
    store: StorageBackend = Depends(get_store),
    key_manager: APIKeyManager = Depends(get_key_manager),
):
    """Create a new API key owned by the database owner."""
    database = _require_database(store, request.database_id)
    return key_manager.create_api_key(database.id, database.user_id, request.name)


@router.get("/api-keys", response_model=List[APIKeyRecord])
async def list_api_keys(
    database_id: Optional[str] = Query(None),
    key_manager: APIKeyManager = Depends(get_key_manager),
):
    return key_manager.list_api_keys(database_id)


@router.post("/api-keys/{key_id}/regenerate", response_model=APIKeyRecord)
async def regenerate_api_key(
    key_id: str, key_manager: APIKeyManager = Depends(get_key_manager)
):
    """Issue a new secret. The previous one is rejected from now on."""
    return key_manager.regenerate(key_id)


@router.post("/api-keys/{key_id}/toggle", response_model=APIKeyRecord)
async def toggle_api_key(
    key_id: str,
    request: Optional[APIKeyToggle] = Body(None),
    key_manager: APIKeyManager = Depends(get_key_manager),
):
    """Activate or deactivate a key; flips the current state without a body."""
    return key_manager.set_active(key_id, request.is_active if request else None)


@router.delete("/api-keys/{key_id}")
async def delete_api_key(
    key_id: str, key_manager: APIKeyManager = Depends(get_key_manager)
):
    key_manager.delete(key_id)
    return {"message": "API key deleted"}


# -- Query logs --------------------------------------------------------------


class ClearResult(BaseModel):
    deleted: int


@router.get("/query-logs", response_model=List[QueryLogRecord])
async def list_query_logs(
    database_id: Optional[str] = Query(None),
    method: Optional[str] = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    store: StorageBackend = Depends(get_store),
):
    """Recent audit entries across tenants, newest first."""
    return store.list_query_logs(database_id=database_id, method=method, limit=limit)


@router.delete("/query-logs", response_model=ClearResult)
async def clear_query_logs(store: StorageBackend = Depends(get_store)):
    """Bulk-clear the audit log."""
    return ClearResult(deleted=store.clear_query_logs())
