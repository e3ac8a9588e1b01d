import importlib
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from core.events import EventBus, pop_pending_events

logger = logging.getLogger(__name__)


# Base class for declarative models
class Base(DeclarativeBase):
    pass


def _configure_sqlite(engine: AsyncEngine) -> None:
    """
    Make SQLite transactions take the write lock up front.

    pysqlite's implicit deferred BEGIN lets two writers both read and then
    deadlock on upgrade; BEGIN IMMEDIATE serializes them instead.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


MODEL_MODULES = (
    "database.models.users",
    "database.models.organizations",
    "database.models.jobs",
    "database.models.referrals",
    "database.models.finance",
    "database.models.disputes",
    "database.models.audit",
)


def import_models() -> None:
    """Import every model module so its tables register on Base.metadata."""
    for module in MODEL_MODULES:
        importlib.import_module(module)


class Database:
    """
    Storage handle injected into every service.

    Owns the engine, the session factory and the event bus that receives
    events once a unit of work commits.
    """

    def __init__(
        self,
        url: str,
        events: Optional[EventBus] = None,
        echo: bool = False,
        pool_size: int = 20,
        max_overflow: int = 10,
    ):
        self.url = url
        self.events = events or EventBus()
        import_models()

        if url.startswith("sqlite"):
            self.engine = create_async_engine(
                url, echo=echo, connect_args={"timeout": 30}
            )
            _configure_sqlite(self.engine)
        else:
            self.engine = create_async_engine(
                url,
                echo=echo,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_pre_ping=True,
            )

        # Create async session maker to be used by the services
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    @property
    def is_sqlite(self) -> bool:
        return self.engine.dialect.name == "sqlite"

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Plain session for read-only work."""
        async with self.session_factory() as session:
            yield session

    @asynccontextmanager
    async def transaction(
        self, session: Optional[AsyncSession] = None
    ) -> AsyncIterator[AsyncSession]:
        """
        Run an atomic unit of work.

        If ``session`` is given the caller already owns a unit of work and this
        one joins it: nothing is committed or published here. Otherwise a new
        session is opened, committed on success, rolled back on any exception,
        and the events recorded on it are published after the commit.
        """
        if session is not None:
            yield session
            return

        async with self.session_factory() as new_session:
            async with new_session.begin():
                yield new_session
            events = pop_pending_events(new_session)

        for domain_event in events:
            await self.events.publish(domain_event)

    async def create_all(self) -> None:
        """Create tables for every registered model."""
        import_models()

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        """Close database engine and connections."""
        await self.engine.dispose()
