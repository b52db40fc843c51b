"""
Database engine and session management
"""
from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from core.config import settings
from infrastructure.models import Base


def _build_async_url(database_url: str) -> str:
    """Make sure the URL uses an async driver"""
    url = make_url(database_url)
    drivername = url.drivername

    if "+" in drivername:
        return database_url

    driver_map = {
        "postgresql": "postgresql+asyncpg",
        "postgres": "postgresql+asyncpg",
        "sqlite": "sqlite+aiosqlite",
    }

    if drivername not in driver_map:
        raise ValueError(f"Unsupported database driver: {drivername}. Use an async driver URL")

    return url.set(drivername=driver_map[drivername]).render_as_string(hide_password=False)


def _serialize_sqlite_writers(engine: AsyncEngine) -> None:
    """Start every SQLite transaction with BEGIN IMMEDIATE so concurrent writers queue up."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # let SQLAlchemy emit BEGIN itself instead of the driver
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_url: str, *, echo: bool = False, **kwargs) -> AsyncEngine:
    url = _build_async_url(database_url)
    if make_url(url).get_backend_name() == "sqlite":
        kwargs.setdefault("connect_args", {"timeout": 30})
        engine = create_async_engine(url, echo=echo, **kwargs)
        _serialize_sqlite_writers(engine)
        return engine
    kwargs.setdefault("pool_size", settings.database.pool_size)
    kwargs.setdefault("max_overflow", settings.database.max_overflow)
    kwargs.setdefault("pool_pre_ping", True)
    return create_async_engine(url, echo=echo, **kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=bind, expire_on_commit=False)


engine = build_engine(settings.database.url, echo=settings.database.echo)

AsyncSessionLocal = build_session_factory(engine)


async def create_tables(bind: AsyncEngine = engine):
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

