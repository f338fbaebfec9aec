from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from typing import Annotated, List, Optional, Dict, Any
from datetime import datetime, timezone


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands timezone-aware columns back naive
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UTCDateTime = Annotated[datetime, AfterValidator(_as_utc)]


# =============================================================================
# Gateway Envelope Schemas
# =============================================================================

GATEWAY_ACTIONS = ("select", "insert", "update", "delete")


class GatewayRequest(BaseModel):
    """Request envelope accepted by the generic data endpoint.

    Only types are checked here; presence rules and the action whitelist are
    applied by the dispatcher so each failure maps to its own error kind.
    """

    model_config = ConfigDict(extra="ignore")

    api_key: Optional[str] = None
    action: Optional[str] = None
    table: Optional[str] = None
    data: Optional[Any] = None
    filters: Optional[Dict[str, Any]] = None
    row_id: Optional[str] = None
    cursor: Optional[str] = None


class GatewaySuccess(BaseModel):
    """Success envelope."""

    success: bool = True
    data: Any = None
    next_cursor: Optional[str] = None


# =============================================================================
# Stored Record Schemas (shared by every storage backend)
# =============================================================================


class AuthenticatedKey(BaseModel):
    """Result of a successful key lookup."""

    key_id: str
    database_id: str
    user_id: str


class APIKeyRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    database_id: str
    key_value: str
    name: str = "Default key"
    is_active: bool = True
    created_at: Optional[UTCDateTime] = None
    last_used_at: Optional[UTCDateTime] = None


class DatabaseRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    name: str
    description: Optional[str] = None
    status: str = "active"
    created_at: Optional[UTCDateTime] = None


class TableRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    database_id: str
    name: str
    created_at: Optional[UTCDateTime] = None


class ColumnDefinition(BaseModel):
    """Declared column of a user table."""

    model_config = ConfigDict(from_attributes=True)

    name: str = Field(..., min_length=1)
    data_type: str = Field("text", description="text, integer, float, boolean, timestamp, uuid or jsonb")
    is_nullable: bool = True
    default_value: Optional[str] = None
    position: int = 0


class RowRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    table_id: str
    data: Dict[str, Any] = Field(default_factory=dict)
    created_at: UTCDateTime
    updated_at: UTCDateTime


class QueryLogRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    database_id: str
    user_id: str
    method: str
    endpoint: str
    status_code: int
    response_time_ms: Optional[int] = None
    request_body: Optional[Dict[str, Any]] = None
    created_at: Optional[UTCDateTime] = None


# =============================================================================
# Management Schemas
# =============================================================================


class DatabaseCreate(BaseModel):
    """Request to create a tenant database."""

    user_id: str = Field(..., min_length=1, description="Owning user id")
    name: str = Field(..., min_length=1)
    description: Optional[str] = None


class TableCreate(BaseModel):
    """Request to create a table with its column definitions."""

    name: str = Field(..., min_length=1)
    columns: List[ColumnDefinition] = Field(default_factory=list)


class APIKeyRequest(BaseModel):
    """Request to create new API key."""

    database_id: str = Field(..., description="Database the key is scoped to")
    name: Optional[str] = Field("Default key", description="Friendly name for the API key")


class APIKeyToggle(BaseModel):
    is_active: Optional[bool] = Field(
        None, description="Explicit state; flips the current state when omitted"
    )


# =============================================================================
# Error Schemas
# =============================================================================


class ErrorResponse(BaseModel):
    """Flat error envelope."""

    error: str
