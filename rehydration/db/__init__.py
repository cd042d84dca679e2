"""Database module."""

from rehydration.db.session import (
    SessionFactory,
    bind_table,
    close_db,
    get_async_session,
    init_db,
    session_factory_for,
)

__all__ = [
    "SessionFactory",
    "bind_table",
    "close_db",
    "get_async_session",
    "init_db",
    "session_factory_for",
]
