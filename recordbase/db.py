import argparse
import asyncio
from collections.abc import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from recordbase import models  # noqa: F401
from recordbase.config import settings
from recordbase.models.base import Base
from recordbase.utils.logger import setup_logger

logger = setup_logger("db")

if not settings.app_database_url.startswith("postgresql+asyncpg://"):
    if settings.app_database_url.startswith("postgresql://"):
        settings.app_database_url = settings.app_database_url.replace(
            "postgresql://", "postgresql+asyncpg://", 1
        )
    else:
        raise ValueError(
            f"Unsupported RECORDBASE_DATABASE_URL prefix: {settings.app_database_url}"
        )

app_engine = create_async_engine(
    settings.app_database_url,
    pool_pre_ping=True,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_timeout=60,
    pool_recycle=300,
    echo=False,
    connect_args={
        "timeout": 30,
        "server_settings": {"search_path": f"{settings.schema_name},public"},
    },
)

AppAsyncSessionLocal = async_sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=app_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# --- Dependency for FastAPI ---
async def get_app_db() -> AsyncGenerator[AsyncSession, None]:
    async with AppAsyncSessionLocal() as session:
        yield session


async def init_db():
    """Create the schema and all tables registered on ``Base.metadata``."""
    logger.debug(
        f"Tables registered in Base.metadata: {list(Base.metadata.tables.keys())}"
    )
    async with app_engine.begin() as conn:
        await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {settings.schema_name}"))
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Database schema '{settings.schema_name}' initialized.")


async def check_db_connection() -> bool:
    try:
        async with app_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connectivity check failed: {e}")
        return False


async def close_db():
    """Closes database connections."""
    logger.info("Closing database connections.")
    await app_engine.dispose()
    logger.info("Database connections closed.")


async def reset_db():
    logger.warning(
        f"Resetting the application database (schema: {settings.schema_name}). "
        "THIS IS A DESTRUCTIVE OPERATION."
    )
    async with app_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database reset complete.")


def main():
    parser = argparse.ArgumentParser(description="recordbase database management")
    parser.add_argument("command", choices=["init", "reset", "check"])
    args = parser.parse_args()

    async def _run():
        try:
            if args.command == "init":
                await init_db()
            elif args.command == "reset":
                await reset_db()
            else:
                ok = await check_db_connection()
                logger.info("Database reachable." if ok else "Database unreachable.")
        finally:
            await close_db()

    asyncio.run(_run())


if __name__ == "__main__":
    main()
