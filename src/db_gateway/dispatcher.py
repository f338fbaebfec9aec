"""Request dispatcher for the generic data endpoint.

A call moves through ``Received -> Authenticated -> TableResolved -> Executed
-> Logged -> Responded``. Any failure stops the progression and answers
immediately; once the key has been accepted the failure is still audited.
Authentication always runs before table resolution so an invalid key never
learns whether a table exists.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from .errors import (
    GatewayError,
    InvalidPayload,
    MalformedEnvelope,
    TableNotFound,
    UnknownAction,
)
from .schemas import GATEWAY_ACTIONS, AuthenticatedKey, GatewayRequest, TableRecord
from .utils.audit import AuditLogger
from .utils.auth import APIKeyManager
from .utils.logging import get_logger
from .utils.rows import RowStore
from .utils.schema import SchemaResolver

logger = get_logger(__name__)


class DispatchState(str, Enum):
    RECEIVED = "received"
    AUTHENTICATED = "authenticated"
    TABLE_RESOLVED = "table_resolved"
    EXECUTED = "executed"
    LOGGED = "logged"
    RESPONDED = "responded"
    # terminal failures
    MALFORMED = "malformed"
    AUTH_FAILED = "auth_failed"
    TABLE_NOT_FOUND = "table_not_found"
    EXECUTION_FAILED = "execution_failed"


@dataclass
class DispatchResult:
    status_code: int
    body: Dict[str, Any]
    outcome: DispatchState
    trace: List[DispatchState] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status_code < 400


Scheduler = Callable[..., Any]


def _run_now(func, *args, **kwargs):
    func(*args, **kwargs)


class RequestDispatcher:
    """Stateless entry point wiring the key store, resolver, row store and audit log."""

    def __init__(
        self,
        key_manager: APIKeyManager,
        schema_resolver: SchemaResolver,
        row_store: RowStore,
        audit_logger: AuditLogger,
    ):
        self.key_manager = key_manager
        self.schema_resolver = schema_resolver
        self.row_store = row_store
        self.audit_logger = audit_logger

    def dispatch(self, payload: Any, schedule: Optional[Scheduler] = None) -> DispatchResult:
        """Handle one envelope.

        ``schedule(func, *args, **kwargs)`` defers the audit write and the key
        ``last_used_at`` update until after the response; without it they run
        inline.
        """
        schedule = schedule or _run_now
        started = time.perf_counter()
        trace = [DispatchState.RECEIVED]

        try:
            request = self.validate_envelope(payload)
        except GatewayError as e:
            return self._fail(e, DispatchState.MALFORMED, trace)

        try:
            identity = self.key_manager.authenticate(request.api_key)
        except GatewayError as e:
            return self._fail(e, DispatchState.AUTH_FAILED, trace)
        except Exception:
            logger.exception("key_lookup_failed")
            return self._fail(GatewayError(), DispatchState.AUTH_FAILED, trace)
        trace.append(DispatchState.AUTHENTICATED)

        status_code = 200
        next_cursor = None
        outcome = DispatchState.RESPONDED
        try:
            table = self.schema_resolver.resolve(identity.database_id, request.table)
            trace.append(DispatchState.TABLE_RESOLVED)
            result, next_cursor = self._execute(request, table)
            if request.action == "insert":
                status_code = 201
            trace.append(DispatchState.EXECUTED)
            body = {"success": True, "data": result}
            if next_cursor:
                body["next_cursor"] = next_cursor
        except GatewayError as e:
            outcome = (
                DispatchState.TABLE_NOT_FOUND
                if isinstance(e, TableNotFound)
                else DispatchState.EXECUTION_FAILED
            )
            status_code, body = e.status_code, {"error": e.message}
        except Exception:
            logger.exception(
                "gateway_execution_error", action=request.action, table=request.table
            )
            outcome = DispatchState.EXECUTION_FAILED
            status_code, body = 500, {"error": GatewayError.default_message}

        response_time_ms = int((time.perf_counter() - started) * 1000)
        schedule(
            self.audit_logger.record,
            database_id=identity.database_id,
            user_id=identity.user_id,
            action=request.action,
            endpoint=f"/{request.table}",
            status_code=status_code,
            response_time_ms=response_time_ms,
            request_snapshot=self._snapshot(request),
        )
        trace.append(DispatchState.LOGGED)
        if outcome is DispatchState.RESPONDED:
            schedule(self.key_manager.touch, identity.key_id)
        trace.append(outcome)

        logger.info(
            "gateway_dispatch",
            action=request.action,
            table=request.table,
            status_code=status_code,
            response_time_ms=response_time_ms,
            outcome=outcome.value,
        )
        return DispatchResult(status_code, body, outcome, trace)

    @staticmethod
    def validate_envelope(payload: Any) -> GatewayRequest:
        if not isinstance(payload, dict):
            raise MalformedEnvelope("Request body must be a JSON object")
        try:
            request = GatewayRequest.model_validate(payload)
        except ValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first["loc"])
            raise MalformedEnvelope(f"Invalid field '{location}': {first['msg']}")

        if not request.api_key or not request.action or not request.table:
            raise MalformedEnvelope()
        if request.action not in GATEWAY_ACTIONS:
            raise UnknownAction(request.action)
        return request

    def _execute(self, request: GatewayRequest, table: TableRecord):
        action = request.action

        if action == "select":
            return self.row_store.select(table.id, request.filters, request.cursor)

        if action == "insert":
            if request.data is None:
                raise InvalidPayload("Missing 'data' object for insert")
            return self.row_store.insert(table.id, request.data), None

        if action == "update":
            if not request.row_id or request.data is None:
                raise InvalidPayload("Missing 'row_id' and 'data' for update")
            return self.row_store.update(table.id, request.row_id, request.data), None

        if not request.row_id:
            raise InvalidPayload("Missing 'row_id' for delete")
        return self.row_store.delete(table.id, request.row_id), None

    @staticmethod
    def _snapshot(request: GatewayRequest) -> Dict[str, Any]:
        snapshot = {
            "action": request.action,
            "table": request.table,
            "filters": request.filters or None,
        }
        if request.row_id:
            snapshot["row_id"] = request.row_id
        return snapshot

    @staticmethod
    def _fail(
        error: GatewayError, state: DispatchState, trace: List[DispatchState]
    ) -> DispatchResult:
        trace.append(state)
        logger.info(
            "gateway_rejected", status_code=error.status_code, outcome=state.value
        )
        return DispatchResult(error.status_code, {"error": error.message}, state, trace)


def build_dispatcher(store, redis_client=None) -> RequestDispatcher:
    """Wire a dispatcher onto one storage backend using current settings."""
    from .config import settings

    return RequestDispatcher(
        key_manager=APIKeyManager(store, redis_client),
        schema_resolver=SchemaResolver(store),
        row_store=RowStore(
            store,
            limit=settings.select_row_limit,
            enforce_column_types=settings.enforce_column_types,
        ),
        audit_logger=AuditLogger(store),
    )
