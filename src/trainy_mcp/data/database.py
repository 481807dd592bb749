"""Database connection helper for the journey SQLite database."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite

from trainy_mcp.data.config import get_config


def get_db_path() -> Path:
    """Get the database path from configuration (TRAINY_DB_PATH)."""
    return get_config().db_path


@asynccontextmanager
async def get_db(db_path: Path | None = None) -> AsyncIterator[aiosqlite.Connection]:
    """Async context manager for DB connections with Row factory.

    Args:
        db_path: Optional path to the database. If not provided, uses
                 TRAINY_DB_PATH or defaults to 'data/journeys.db'.
                 The parent directory is created if missing.

    Yields:
        aiosqlite.Connection configured with Row factory and foreign keys on.
    """
    if db_path is None:
        db_path = get_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    async with aiosqlite.connect(db_path) as db:
        db.row_factory = aiosqlite.Row
        await db.execute("PRAGMA foreign_keys = ON")
        yield db
