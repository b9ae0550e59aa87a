from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from app.core.config import get_settings
from app.db import models  # noqa: F401  registers tables on Base.metadata
from app.db.models.base import Base

SQLITE_BUSY_TIMEOUT_SECONDS = 15


def _configure_sqlite(engine: AsyncEngine) -> None:
    # pysqlite's implicit BEGIN breaks SAVEPOINT handling; emit our own, and take the
    # write lock up front so balance mutations serialize like SELECT ... FOR UPDATE.
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:  # noqa: ANN001
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn) -> None:  # noqa: ANN001
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_url: str) -> AsyncEngine:
    backend = make_url(database_url).get_backend_name()
    if backend == "sqlite":
        engine = create_async_engine(
            database_url,
            connect_args={"timeout": SQLITE_BUSY_TIMEOUT_SECONDS},
        )
        _configure_sqlite(engine)
        return engine
    if backend == "postgresql":
        return create_async_engine(database_url, pool_pre_ping=True)
    raise ValueError(f"Unsupported DATABASE_URL backend: {backend}")


engine = build_engine(get_settings().database_url)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)


async def dispose_engine() -> None:
    await engine.dispose()


async def create_schema() -> None:
    """Creates all tables; used for local SQLite and tests. PostgreSQL uses alembic."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_schema() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
