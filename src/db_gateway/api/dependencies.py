import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException

from ..config import settings
from ..database import get_redis
from ..dispatcher import RequestDispatcher, build_dispatcher
from ..errors import InvalidKey
from ..schemas import AuthenticatedKey
from ..storage import StorageBackend, get_store
from ..utils.auth import APIKeyManager


def get_dispatcher(store: StorageBackend = Depends(get_store)) -> RequestDispatcher:
    return build_dispatcher(store, get_redis())


def get_key_manager(store: StorageBackend = Depends(get_store)) -> APIKeyManager:
    return APIKeyManager(store, get_redis())


async def verify_api_key(
    authorization: Optional[str] = Header(None),
    api_key: Optional[str] = Header(None, alias="x-api-key"),
    key_manager: APIKeyManager = Depends(get_key_manager),
) -> AuthenticatedKey:
    """Verify an API key sent as ``Authorization: Bearer <key>`` or ``X-API-Key``."""

    api_key_value = None

    if authorization and authorization.startswith("Bearer "):
        api_key_value = authorization.replace("Bearer ", "", 1).strip()
    elif authorization and authorization.startswith(settings.api_key_prefix):
        # Direct format: "gfx_..."
        api_key_value = authorization.strip()
    elif api_key:
        api_key_value = api_key.strip()

    if not api_key_value:
        raise InvalidKey("Missing API key")

    return key_manager.authenticate(api_key_value)


async def require_admin(
    admin_key: Optional[str] = Header(None, alias="x-admin-key"),
) -> None:
    """Guard for the management surface."""
    if not settings.admin_api_key:
        raise HTTPException(status_code=503, detail="Admin API is disabled")
    if not admin_key or not secrets.compare_digest(admin_key, settings.admin_api_key):
        raise HTTPException(status_code=401, detail="Invalid admin key")
