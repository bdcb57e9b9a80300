"""Database engine and session setup using SQLAlchemy's async API."""

import logging

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from rideshare.db.base_class import Base

logger = logging.getLogger(__name__)


def _serialize_sqlite_writers(engine) -> None:
    """Take the SQLite write lock when a transaction begins.

    SQLite has no row locks, so ``SELECT ... FOR UPDATE`` compiles to a plain
    select there. ``BEGIN IMMEDIATE`` makes the whole database the lock: a
    second transaction waits in the driver until the first one finishes.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """Owns the connection pool; built once by the entry point and passed down."""

    def __init__(self, database_url: str, echo: bool = False):
        self.url = database_url
        is_sqlite = database_url.startswith("sqlite")
        if is_sqlite:
            # One connection per session; waits up to 30s for the write lock
            engine_kwargs = {"connect_args": {"timeout": 30}, "poolclass": NullPool}
        else:
            engine_kwargs = {
                "pool_size": 20,
                "max_overflow": 40,
                "pool_pre_ping": True,
                "pool_recycle": 3600,
            }
        self.engine = create_async_engine(database_url, echo=echo, **engine_kwargs)
        if is_sqlite:
            _serialize_sqlite_writers(self.engine)

        self.session_factory = async_sessionmaker(
            bind=self.engine,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
            class_=AsyncSession,
        )

    def session(self) -> AsyncSession:
        return self.session_factory()

    async def create_all(self) -> None:
        # Registers every table on Base.metadata
        import rideshare.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        import rideshare.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def ping(self) -> bool:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    async def dispose(self) -> None:
        await self.engine.dispose()
        logger.info("Database pool closed")
