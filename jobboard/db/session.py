from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from jobboard.core.config import settings
from jobboard.core.logging import get_logger
from jobboard.helpers.getters import isDebugMode

logger = get_logger(__name__)

DATABASE_URL = settings.DATABASE_URL


def enable_sqlite_foreign_keys(bind: AsyncEngine) -> None:
    """SQLite ignores ON DELETE rules unless every connection turns foreign keys on."""

    @event.listens_for(bind.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


if DATABASE_URL.startswith("sqlite"):
    logger.info("Using SQLite database")
    engine = create_async_engine(DATABASE_URL, future=True, echo=False)
    enable_sqlite_foreign_keys(engine)
else:
    logger.info("Using %s database URL", "debug" if isDebugMode() else "production")
    engine = create_async_engine(DATABASE_URL, future=True, echo=isDebugMode(), pool_pre_ping=True)

SessionAsync = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(bind=engine):
    """Create all tables (development only, use migrations in production)."""
    from jobboard.db.base import Base

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
