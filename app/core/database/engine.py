"""
Database engine, session dependency and transaction helper.

SQLite through aiosqlite by default; set DATABASE_URL to a
postgresql+asyncpg:// URL (and install asyncpg) to run on PostgreSQL.
Services that touch several tables wrap their writes in atomic() so an
invariant violation leaves nothing half-applied.
"""
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.core import config

engine = create_async_engine(
    config.SQLALCHEMY_DATABASE_URL,
    # NullPool for SQLite to avoid connection pool issues
    # For PostgreSQL, remove poolclass or use QueuePool
    poolclass=NullPool if config.SQLALCHEMY_DATABASE_URL.startswith("sqlite") else None,
    echo=config.SQL_ECHO,
    future=True,
)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database sessions.

    Usage in FastAPI routes:
        @router.get("/menus")
        async def list_menus(db: AsyncSession = Depends(get_db)):
            result = await db.execute(select(Menu))
            return result.scalars().all()
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@asynccontextmanager
async def atomic(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Run a multi-statement unit of work as one transaction.

    Commits when the block exits cleanly. Any exception, including the
    service errors raised for invariant violations, rolls the whole unit
    back before it propagates. Nothing is retried.

    Usage:
        async with atomic(db):
            await db.execute(delete(role_menus).where(...))
            await db.execute(insert(role_menus), rows)
    """
    try:
        yield db
        await db.commit()
    except Exception:
        await db.rollback()
        raise


async def init_db():
    """
    Initialize database tables.
    Call this on application startup to create all tables.
    """
    from app.core.database.base import Base

    # Import all models to ensure they're registered with SQLAlchemy
    from app.features.users.models import User  # noqa: F401
    from app.features.organizations.models import Organization, user_organizations  # noqa: F401
    from app.features.roles.models import Role, user_org_roles  # noqa: F401
    from app.features.menus.models import Menu, role_menus, user_menus  # noqa: F401

    async with engine.begin() as conn:
        # For development: drop and recreate all tables
        # await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
