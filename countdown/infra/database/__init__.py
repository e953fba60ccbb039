from .connection import (
    ASYNC_DATABASE_URL,
    AsyncSessionLocal,
    async_engine,
    create_db_and_tables,
    get_session,
)

__all__ = [
    "ASYNC_DATABASE_URL",
    "AsyncSessionLocal",
    "async_engine",
    "create_db_and_tables",
    "get_session",
]
