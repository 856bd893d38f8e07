"""
Database Configuration

Async SQLAlchemy engine, declarative base and the storage capability used by
the services.

The rest of the application talks to the database through ``StorageBackend``:
``execute`` for single writes, ``query_all`` for reads and ``transaction``
for multi-statement units of work. Two backends are supported and selected
from ``DATABASE_URL``:

- PostgreSQL (``postgresql+asyncpg://...``)
- SQLite (``sqlite+aiosqlite://...``), for local development and tests

Each backend supplies its own conflict-ignoring insert so that uniqueness is
always enforced by the database, never by a read-then-write check.

Every call is bounded by ``STORAGE_TIMEOUT_SECONDS``; timeouts and lost
connections surface as ``InfrastructureUnavailableError``.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import asynccontextmanager
from typing import Any, TypeVar

from fastapi import Request
from sqlalchemy import Table, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import make_url
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.sql import Executable

from app.core.errors import InfrastructureUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class StorageBackend(ABC):
    """
    Storage capability shared by all persistence backends.

    Instances are created by the process entry point and injected into
    repositories; components never open connections on their own.
    """

    backend_name: str = ""

    def __init__(self, engine: AsyncEngine, timeout_seconds: float):
        self.engine = engine
        self.timeout_seconds = timeout_seconds
        self.session_maker = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def _guard(self) -> AsyncIterator[None]:
        """Apply the call timeout and map connectivity failures."""
        try:
            async with asyncio.timeout(self.timeout_seconds):
                yield
        except TimeoutError as e:
            logger.error(f"{self.backend_name} call exceeded {self.timeout_seconds}s timeout")
            raise InfrastructureUnavailableError("storage") from e
        # Drivers raise plain OSError (e.g. ConnectionRefusedError) when connecting
        except (
            OperationalError,
            InterfaceError,
            DisconnectionError,
            PoolTimeoutError,
            OSError,
        ) as e:
            logger.error(f"{self.backend_name} unavailable: {e.__class__.__name__}")
            raise InfrastructureUnavailableError("storage") from e

    async def execute(self, statement: Executable) -> int:
        """
        Run a single write statement in its own transaction.

        Returns:
            Number of rows affected
        """
        async with self._guard():
            async with self.session_maker() as session:
                async with session.begin():
                    result = await session.execute(statement)
                    return result.rowcount

    async def query_all(self, statement: Executable) -> list[Any]:
        """Run a read statement and return the first column of every row."""
        async with self._guard():
            async with self.session_maker() as session:
                result = await session.execute(statement)
                return list(result.scalars().all())

    async def transaction(self, callback: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """
        Run ``callback`` inside one transaction.

        The transaction commits when the callback returns and rolls back if
        it raises.
        """
        async with self._guard():
            async with self.session_maker() as session:
                async with session.begin():
                    return await callback(session)

    @abstractmethod
    def insert_ignoring_conflict(
        self,
        table: Table,
        values: dict[str, Any],
        conflict_columns: Sequence[str],
    ) -> Any:
        """
        Build an INSERT that does nothing when ``conflict_columns`` collide
        with an existing row. Callers add ``.returning(...)`` as needed.
        """

    async def ping(self) -> bool:
        """Check that the database answers a trivial query."""
        async with self._guard():
            async with self.engine.connect() as conn:
                result = await conn.execute(text("SELECT 1"))
                return result.scalar() == 1

    async def create_schema(self) -> None:
        """Create missing tables (development only; production uses Alembic)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """Release all pooled connections."""
        await self.engine.dispose()


class PostgresStorage(StorageBackend):
    """PostgreSQL backend (asyncpg)."""

    backend_name = "postgresql"

    def insert_ignoring_conflict(self, table, values, conflict_columns):
        return (
            postgresql.insert(table)
            .values(**values)
            .on_conflict_do_nothing(index_elements=list(conflict_columns))
        )


class SqliteStorage(StorageBackend):
    """SQLite backend (aiosqlite)."""

    backend_name = "sqlite"

    def insert_ignoring_conflict(self, table, values, conflict_columns):
        return (
            sqlite.insert(table)
            .values(**values)
            .on_conflict_do_nothing(index_elements=list(conflict_columns))
        )


_BACKENDS: dict[str, type[StorageBackend]] = {
    "postgresql": PostgresStorage,
    "sqlite": SqliteStorage,
}


def create_storage(
    database_url: str,
    *,
    timeout_seconds: float,
    echo: bool = False,
) -> StorageBackend:
    """
    Build the storage backend for ``database_url``.

    Raises:
        ValueError: If the URL names an unsupported database
    """
    url = make_url(database_url)
    backend_name = url.get_backend_name()
    backend_cls = _BACKENDS.get(backend_name)
    if backend_cls is None:
        raise ValueError(
            f"Unsupported database backend '{backend_name}'. Supported: {sorted(_BACKENDS)}"
        )

    engine_kwargs: dict[str, Any] = {"echo": echo}
    if backend_name == "postgresql":
        engine_kwargs.update(
            pool_pre_ping=True,
            pool_size=10,
            max_overflow=5,
            pool_timeout=timeout_seconds,
        )
    else:
        engine_kwargs["connect_args"] = {"timeout": timeout_seconds}

    engine = create_async_engine(url, **engine_kwargs)
    logger.info(f"Configured {backend_name} storage backend")
    return backend_cls(engine, timeout_seconds=timeout_seconds)


def get_storage(request: Request) -> StorageBackend:
    """
    FastAPI dependency returning the storage backend created at startup.

    Usage:
        @router.get("/items")
        async def list_items(storage: StorageBackend = Depends(get_storage)):
            ...
    """
    return request.app.state.storage


__all__ = [
    "Base",
    "StorageBackend",
    "PostgresStorage",
    "SqliteStorage",
    "create_storage",
    "get_storage",
]
