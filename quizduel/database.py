"""Database connection and session management."""
import logging
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from quizduel.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

# Determine if we need SSL (for Heroku or other cloud databases)
connect_args = {}
needs_ssl = (
    "heroku" in settings.database_url or
    "amazonaws" in settings.database_url or
    settings.environment == "production"
)

if needs_ssl and "sqlite" not in settings.database_url:
    connect_args["ssl"] = "require"
    logger.debug("SSL connection enabled (ssl=require)")

# Configure pool sizing to avoid exhausting limited database connections
pool_size = max(1, settings.db_pool_size)
max_overflow = max(0, settings.db_max_overflow)

if settings.environment == "production":
    pool_size = min(pool_size, 2)
    max_overflow = min(max_overflow, 2)

engine_kwargs = {}
if "sqlite" not in settings.database_url:
    engine_kwargs.update(pool_size=pool_size, max_overflow=max_overflow)

try:
    engine = create_async_engine(
        settings.database_url,
        echo=False,
        future=True,
        connect_args=connect_args,
        pool_pre_ping=True,  # Verify connections before use
        pool_recycle=3600,   # Recycle connections every hour
        **engine_kwargs,
    )
    logger.debug("Database engine created successfully")
except Exception as e:
    logger.error(f"Failed to create database engine: {e}")
    raise

# Session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

# Base class for models
Base = declarative_base()


# Dependency for FastAPI
async def get_db():
    """FastAPI dependency to get database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


def get_session_factory() -> async_sessionmaker:
    """FastAPI dependency returning the factory used by background units of work."""
    return AsyncSessionLocal


def insert_for_dialect(db: AsyncSession):
    """Dialect ``insert`` construct supporting ``on_conflict_do_nothing``."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"Unsupported dialect for conflict-aware inserts: {dialect}")
