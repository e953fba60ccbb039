import logging
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from countdown.configs import configs

logger = logging.getLogger(__name__)

ASYNC_DATABASE_URL = configs.Database.async_url


def _create_engine(url: str) -> AsyncEngine:
    if url.startswith("postgresql"):
        return create_async_engine(
            url,
            pool_pre_ping=True,
            pool_recycle=1800,
            pool_size=configs.Database.Postgres.PoolSize,
            max_overflow=configs.Database.Postgres.MaxOverflow,
        )
    return create_async_engine(url)


async_engine = _create_engine(ASYNC_DATABASE_URL)

# Rows outlive their session: the scheduler hands subscriptions across tasks
AsyncSessionLocal = async_sessionmaker(bind=async_engine, class_=AsyncSession, expire_on_commit=False)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a request-scoped session."""
    async with AsyncSessionLocal() as session:
        yield session


async def create_db_and_tables() -> None:
    from countdown import models  # noqa: F401  (registers tables on the metadata)

    async with async_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("Tables ready on %s", configs.Database.Engine)
