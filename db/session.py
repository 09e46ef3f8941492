from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from core.config import settings

engine_options = dict(
    echo=False, # Disable echo in prod for performance
    pool_pre_ping=True,
    future=True,
)
# SQLite (tests, local runs) does not take pool sizing
if not settings.DATABASE_URL.startswith("sqlite"):
    engine_options.update(
        pool_recycle=3600,
        pool_size=settings.DB_POOL_SIZE,       # Base connections
        max_overflow=settings.DB_MAX_OVERFLOW, # Burst connections
    )

engine = create_async_engine(settings.DATABASE_URL, **engine_options)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

