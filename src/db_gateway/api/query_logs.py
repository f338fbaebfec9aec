"""Audit log view for API key holders."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ..schemas import AuthenticatedKey, QueryLogRecord
from ..storage import StorageBackend, get_store
from .dependencies import verify_api_key

router = APIRouter(prefix="/v1/query-logs", tags=["Query Logs"])


@router.get("", response_model=List[QueryLogRecord])
async def list_query_logs(
    method: Optional[str] = Query(None, description="Only entries for this action"),
    limit: int = Query(50, ge=1, le=200),
    identity: AuthenticatedKey = Depends(verify_api_key),
    store: StorageBackend = Depends(get_store),
):
    """Recent audit entries for the database the API key is bound to, newest first."""
    return store.list_query_logs(
        database_id=identity.database_id, method=method, limit=limit
    )
