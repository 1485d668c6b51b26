from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from core.config import settings

# SQLite (used by the test suite) does not accept pool sizing arguments
_pool_kwargs = {}
if not settings.DATABASE_URL.startswith("sqlite"):
    _pool_kwargs = dict(
        pool_size=settings.DB_POOL_SIZE,        # Base connections
        max_overflow=settings.DB_MAX_OVERFLOW,  # Burst connections
        pool_recycle=3600,
    )

# PostgreSQL driver for async operations is asyncpg
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False, # Disable echo in prod for performance
    pool_pre_ping=True,
    future=True,
    **_pool_kwargs,
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


def get_session_factory():
    """Services that open their own sessions (concurrent reads, transactions) take the factory."""
    return AsyncSessionLocal


async def get_redis():
    from redis.asyncio import Redis
    redis = Redis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        yield redis
    finally:
        await redis.aclose()
