from typing import Any, Dict, Optional

from ..schemas import QueryLogRecord
from ..storage.base import StorageBackend, new_id
from .logging import get_logger

logger = get_logger(__name__)


class AuditLogger:
    """Writes one query-log entry per authenticated gateway call.

    Meant to run after the response is sent. Failures are logged server-side
    and never reach the caller.
    """

    def __init__(self, store: StorageBackend):
        self.store = store

    def record(
        self,
        database_id: str,
        user_id: str,
        action: str,
        endpoint: str,
        status_code: int,
        response_time_ms: int,
        request_snapshot: Optional[Dict[str, Any]] = None,
    ) -> bool:
        try:
            self.store.append_query_log(
                QueryLogRecord(
                    id=new_id(),
                    database_id=database_id,
                    user_id=user_id,
                    method=action,
                    endpoint=endpoint,
                    status_code=status_code,
                    response_time_ms=response_time_ms,
                    request_body=request_snapshot,
                )
            )
            return True
        except Exception as e:
            logger.error(
                "audit_write_failed",
                database_id=database_id,
                action=action,
                status_code=status_code,
                error=str(e),
            )
            return False
