import hashlib
import json
import logging
import secrets
from typing import List, Optional

from ..errors import InvalidKey, NotFound
from ..models.tenant import utcnow
from ..schemas import APIKeyRecord, AuthenticatedKey
from ..storage.base import StorageBackend, new_id

logger = logging.getLogger(__name__)


class APIKeyManager:
    """Manages API key creation, validation, and caching."""

    def __init__(self, store: StorageBackend, redis_client=None):
        self.store = store
        self.redis = redis_client

    def generate_api_key(self) -> str:
        """Generate a new random secret with the configured prefix."""
        from ..config import settings

        # at least 16 bytes (128 bits) whatever the configuration says
        n_bytes = max(settings.api_key_bytes, 16)
        return f"{settings.api_key_prefix}{secrets.token_hex(n_bytes)}"

    def create_api_key(
        self, database_id: str, user_id: str, name: Optional[str] = None
    ) -> APIKeyRecord:
        """Create a new active API key scoped to ``database_id``."""
        record = APIKeyRecord(
            id=new_id(),
            user_id=user_id,
            database_id=database_id,
            key_value=self.generate_api_key(),
            name=name or "Default key",
            is_active=True,
        )
        return self.store.create_key(record)

    def list_api_keys(self, database_id: Optional[str] = None) -> List[APIKeyRecord]:
        return self.store.list_keys(database_id)

    def authenticate(self, key: str) -> AuthenticatedKey:
        """Resolve a secret to its tenant or raise ``InvalidKey``."""
        if not key:
            raise InvalidKey()

        cached = self._cache_get(key)
        if cached is not None:
            return cached

        api_key = self.store.get_key_by_value(key)
        if api_key is None or not api_key.is_active:
            raise InvalidKey()

        identity = AuthenticatedKey(
            key_id=api_key.id,
            database_id=api_key.database_id,
            user_id=api_key.user_id,
        )
        self._cache_set(key, identity)
        return identity

    def regenerate(self, key_id: str) -> APIKeyRecord:
        """Replace the secret; the old one stops working immediately."""
        current = self._require(key_id)
        updated = self.store.update_key(key_id, key_value=self.generate_api_key())
        if updated is None:
            raise NotFound("API key not found")
        self._cache_delete(current.key_value)
        logger.info(f"🔑 API key {key_id} regenerated")
        return updated

    def set_active(self, key_id: str, is_active: Optional[bool] = None) -> APIKeyRecord:
        """Set the active flag, or flip it when ``is_active`` is None."""
        current = self._require(key_id)
        flag = (not current.is_active) if is_active is None else is_active
        updated = self.store.update_key(key_id, is_active=flag)
        if updated is None:
            raise NotFound("API key not found")
        self._cache_delete(current.key_value)
        return updated

    def delete(self, key_id: str) -> None:
        current = self._require(key_id)
        self.store.delete_key(key_id)
        self._cache_delete(current.key_value)
        logger.info(f"🗑️ API key {key_id} deleted")

    def touch(self, key_id: str) -> None:
        """Record the last use of a key. Never raises."""
        try:
            self.store.update_key(key_id, last_used_at=utcnow())
        except Exception as e:
            logger.error(f"Failed to update last_used_at for {key_id}: {e}")

    def _require(self, key_id: str) -> APIKeyRecord:
        record = self.store.get_key(key_id)
        if record is None:
            raise NotFound("API key not found")
        return record

    # Redis cache, best effort

    @staticmethod
    def _cache_key(key: str) -> str:
        return f"api_key:{hashlib.sha256(key.encode()).hexdigest()}"

    def _cache_get(self, key: str) -> Optional[AuthenticatedKey]:
        if not self.redis:
            return None
        try:
            cached = self.redis.get(self._cache_key(key))
            if cached:
                return AuthenticatedKey.model_validate(json.loads(cached))
        except Exception:
            pass  # Redis is optional
        return None

    def _cache_set(self, key: str, identity: AuthenticatedKey) -> None:
        if not self.redis:
            return
        from ..config import settings

        try:
            self.redis.setex(
                self._cache_key(key),
                settings.api_key_cache_ttl,
                identity.model_dump_json(),
            )
        except Exception:
            pass

    def _cache_delete(self, key: str) -> None:
        if not self.redis:
            return
        try:
            self.redis.delete(self._cache_key(key))
        except Exception as e:
            logger.warning(f"⚠️ Could not evict cached API key: {e}")
