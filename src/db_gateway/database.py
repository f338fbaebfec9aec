from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
import redis
import logging

from .config import settings

logger = logging.getLogger(__name__)

# SQLAlchemy setup
engine = create_engine(
    settings.database_url,
    connect_args=(
        {"check_same_thread": False} if "sqlite" in settings.database_url else {}
    ),
    pool_pre_ping=True,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# Redis setup (optional)
redis_client = None
if settings.redis_url:
    try:
        redis_client = redis.from_url(settings.redis_url, decode_responses=True)
        redis_client.ping()  # Test connection
        logger.info("✅ Redis connected successfully")
    except Exception as e:
        logger.warning(f"⚠️ Redis not available: {e}")
        redis_client = None


def get_redis():
    """Get Redis client (optional)."""
    return redis_client


def create_tables(bind=None):
    """Create all database tables."""
    # Register every model on Base.metadata before creating
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
    logger.info("✅ Database tables created")
