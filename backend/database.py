"""
KrostyShop persistence: one async engine and a session factory.

The shop keeps accounts, catalog, carts, orders and order chat in a single
SQLite file (DATABASE_URL, default ./data/krostyshop.db) accessed through
aiosqlite. Routes get a session from get_db(); services flush, routes (or
the checkout/webhook services that own a transaction) commit.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for the shop's ORM models (db_models.py)."""
    pass


def async_database_url(url: str) -> str:
    """
    Point a plain SQLite URL at the aiosqlite driver.

    >>> async_database_url("sqlite:///./data/krostyshop.db")
    'sqlite+aiosqlite:///./data/krostyshop.db'
    """
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return url


# ── Engine ──────────────────────────────────────────────────────────

engine = create_async_engine(async_database_url(settings.database_url), echo=False)

# Serialized orders are built after commit, so loaded rows must stay usable
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# ── Helpers ─────────────────────────────────────────────────────────

async def init_db() -> None:
    """Create the shop tables on startup (no-op for tables that exist)."""
    import db_models  # noqa: F401  (registers the models on Base.metadata)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info(f"Database ready: {', '.join(sorted(Base.metadata.tables))}")


async def get_db() -> AsyncSession:
    """FastAPI dependency: one session per request or WebSocket handshake."""
    async with async_session() as session:
        yield session
