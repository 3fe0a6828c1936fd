from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .config import get_settings

settings = get_settings()

_engine_kwargs: dict = {}
if not settings.database_url.startswith("sqlite"):
    _engine_kwargs = dict(
        pool_size=settings.db_pool_size,   # connection pool size
        max_overflow=settings.db_pool_size,
        pool_timeout=30,
        pool_recycle=1800,
    )

engine = create_async_engine(settings.database_url, **_engine_kwargs)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)  # rows stay readable after commit


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session
