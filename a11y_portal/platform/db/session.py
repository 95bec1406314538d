from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm import sessionmaker

from a11y_portal.platform.config import settings


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def sync_database_url(url: str) -> str:
    """Convert the async DATABASE_URL into the URL worker code connects with."""
    if url.startswith("postgresql+asyncpg://"):
        return url.replace("postgresql+asyncpg://", "postgresql://", 1)
    if url.startswith("sqlite+aiosqlite://"):
        return url.replace("sqlite+aiosqlite://", "sqlite://", 1)
    return url


if _is_sqlite(settings.DATABASE_URL):
    engine = create_async_engine(settings.DATABASE_URL, echo=False, future=True)
else:
    engine = create_async_engine(
        settings.DATABASE_URL,
        echo=False,
        future=True,
        pool_pre_ping=True,
        pool_recycle=1800,
        pool_size=20,
        max_overflow=30,  # (burst capacity)
        pool_timeout=30,
    )
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, autoflush=False, autocommit=False)


async def get_db():
    async with SessionLocal() as session:
        yield session


# Worker code (Celery tasks, the scan runner) talks to the database synchronously.
_sync_engine = None
_sync_session_factory = None


def get_sync_session_factory() -> sessionmaker:
    global _sync_engine, _sync_session_factory

    if _sync_engine is None:
        db_url = sync_database_url(settings.DATABASE_URL)
        if _is_sqlite(db_url):
            _sync_engine = create_engine(db_url, connect_args={"check_same_thread": False})
        else:
            _sync_engine = create_engine(
                db_url,
                pool_size=10,
                max_overflow=10,
                pool_timeout=30,
                pool_pre_ping=True,
                pool_recycle=3600,
            )
        _sync_session_factory = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=_sync_engine
        )

    return _sync_session_factory


def get_sync_db():
    """Get a database session for Celery tasks."""
    return get_sync_session_factory()()
