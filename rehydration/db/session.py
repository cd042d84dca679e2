"""Database session management using SQLModel async."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable, Iterable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from enum import Enum

import structlog
from sqlalchemy import MetaData, Table, inspect, literal, text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

# Import all models to ensure they are registered with SQLModel metadata
import rehydration.models  # noqa: F401
from rehydration.config import get_settings

logger = structlog.get_logger()

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

# Lazy initialization - engine created on first use
_engine = None
_async_session_factory = None


def _get_engine():
    """Get or create the async engine."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.database.url,
            echo=settings.database.echo,
            future=True,
        )
    return _engine


def _get_session_factory():
    """Get or create the async session factory."""
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = sessionmaker(
            _get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _async_session_factory


def bind_table(table: Table, name: str) -> Table:
    """Return ``table`` under a different name.

    The model's own table is returned when the name matches. Otherwise a copy
    is made in a private MetaData, with index names rewritten so they stay
    unique within the database.
    """
    if name == table.name:
        return table
    bound = table.to_metadata(MetaData(), name=name)
    for index in bound.indexes:
        if index.name and index.name.startswith(f"ix_{table.name}"):
            index.name = f"ix_{name}{index.name[len(table.name) + 3:]}"
    return bound


def _add_column_ddl(table: Table, col, dialect) -> str:
    """``ALTER TABLE ... ADD COLUMN`` for a column missing from ``table``.

    Raises:
        RuntimeError: For a NOT NULL column without a scalar default; existing
            rows would have no value for it.
    """
    ddl = f"ALTER TABLE {table.name} ADD COLUMN {col.name} {col.type.compile(dialect=dialect)}"
    if col.nullable:
        return ddl

    default = col.default.arg if col.default is not None else None
    if default is None or callable(default):
        raise RuntimeError(
            f"cannot add NOT NULL column {table.name}.{col.name} without a default"
        )
    if isinstance(default, Enum):
        default = default.value
    rendered = literal(default).compile(dialect=dialect, compile_kwargs={"literal_binds": True})
    return f"{ddl} NOT NULL DEFAULT {rendered}"


def _add_missing_columns_sync(conn, tables: list[Table]) -> None:
    """Add model columns missing from tables created by an older release."""
    inspector = inspect(conn)
    existing_tables = set(inspector.get_table_names())

    for table in tables:
        if table.name not in existing_tables:
            continue
        existing_cols = {c["name"] for c in inspector.get_columns(table.name)}
        for col in table.columns:
            if col.name in existing_cols:
                continue
            ddl = _add_column_ddl(table, col, conn.dialect)
            logger.info("db.add_column", table=table.name, column=col.name, ddl=ddl)
            conn.execute(text(ddl))


def _create_tables_sync(conn, tables: list[Table]) -> None:
    for table in tables:
        table.create(conn, checkfirst=True)


async def init_db(tables: Iterable[Table] | None = None, engine=None) -> None:
    """Create missing tables and add missing nullable or defaulted columns.

    Args:
        tables: Tables to initialize. Defaults to every SQLModel table.
        engine: Engine to use. Defaults to the configured engine.
    """
    engine = engine or _get_engine()
    tables = list(tables) if tables is not None else list(SQLModel.metadata.sorted_tables)
    async with engine.begin() as conn:
        await conn.run_sync(_add_missing_columns_sync, tables)
        await conn.run_sync(_create_tables_sync, tables)
    logger.info("db.initialized", tables=[t.name for t in tables])


async def close_db() -> None:
    """Close database connection."""
    global _engine, _async_session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Get async database session as context manager.

    Commits on normal exit and rolls back on error.

    Usage:
        async with get_async_session() as session:
            result = await session.execute(select(table))
    """
    session_factory = _get_session_factory()
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def session_factory_for(engine) -> SessionFactory:
    """Build a ``get_async_session`` equivalent bound to ``engine``."""
    factory = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    @asynccontextmanager
    async def _session() -> AsyncGenerator[AsyncSession, None]:
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    return _session
