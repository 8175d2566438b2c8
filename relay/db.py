from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from . import config

engine = create_async_engine(config.DATABASE_URL, echo=False, future=True)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


def configure(database_url: str) -> None:
    """Point the relay at another database (used by tests and scripts)."""
    global engine, SessionLocal
    engine = create_async_engine(database_url, echo=False, future=True)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def init_models() -> None:
    from .models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# makes sure every request gets its own session
async def get_session() -> AsyncSession:
    async with SessionLocal() as session:
        yield session
