from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Storage
    storage_backend: str = "sql"  # "sql" or "json"
    database_url: str = "sqlite:///./db_gateway.db"
    json_store_path: str = "./mainwebdb.json"

    # Redis (optional API key cache)
    redis_url: Optional[str] = None

    # API keys
    api_key_prefix: str = "gfx_"
    api_key_bytes: int = 24
    api_key_cache_ttl: int = 300

    # Gateway behaviour
    select_row_limit: int = 100
    enforce_column_types: bool = False

    # Admin surface, disabled when unset
    admin_api_key: Optional[str] = None

    # Server Settings
    debug: bool = False
    log_level: str = "info"
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 1

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


# Global settings instance
settings = Settings()
