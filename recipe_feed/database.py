"""
Relational store for the follow graph and the canonical activity log.

Production runs on TiDB over the MySQL protocol (aiomysql driver); feed
partitions live in Redis (see clients/redis_client.py). One engine is built
at import time and shared by the API and the admin CLI.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from recipe_feed.config import settings

logger = logging.getLogger(__name__)

engine = create_async_engine(
    settings.tidb_url,
    pool_pre_ping=True,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
)

# Graph mutations commit explicitly; keep loaded users readable afterwards
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def init_db() -> None:
    """Create the users, follows and activities tables if missing."""
    from recipe_feed import models  # noqa: F401  (registers the tables)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Schema ready on %s", engine.url.render_as_string(hide_password=True))


async def close_db() -> None:
    await engine.dispose()


async def get_db():
    """Per-request session; commits on success, rolls back on any error."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            logger.debug("Rolling back request session", exc_info=True)
            await session.rollback()
            raise
