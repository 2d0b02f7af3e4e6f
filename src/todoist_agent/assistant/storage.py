"""Key-value persistence for session state."""

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime

import aiosqlite

from todoist_agent.assistant.config import DEFAULT_WAL_MODE, SCHEMA_VERSION
from todoist_agent.assistant.exceptions import PersistenceError
from todoist_agent.assistant.interfaces import KeyValueStore

logger = logging.getLogger(__name__)


class SQLiteKeyValueStore(KeyValueStore):
    """SQLite-backed key-value store."""

    def __init__(self, db_path: str, wal_mode: bool = DEFAULT_WAL_MODE) -> None:
        """
        Initialize the store.

        Args:
            db_path: Path to SQLite database file (use ":memory:" for in-memory)
            wal_mode: Enable WAL mode for concurrent access
        """
        self.db_path = db_path
        self.wal_mode = wal_mode
        self._connection: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the connection and bring the schema up to date."""
        if self._connection is None:
            if self.db_path != ":memory:":
                directory = os.path.dirname(self.db_path)
                if directory:
                    os.makedirs(directory, exist_ok=True)

            try:
                self._connection = await aiosqlite.connect(self.db_path)
            except Exception as e:
                raise PersistenceError(f"Failed to open database: {e}") from e

            # WAL is not supported for :memory:
            if self.wal_mode and self.db_path != ":memory:":
                await self._connection.execute("PRAGMA journal_mode=WAL")

        await self._create_schema()

    async def _create_schema(self) -> None:
        async with self._get_connection() as conn:
            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
                """
            )

            cursor = await conn.execute("SELECT MAX(version) FROM schema_version")
            result = await cursor.fetchone()
            current_version = result[0] if result and result[0] is not None else 0

            if current_version < SCHEMA_VERSION:
                await self._apply_migrations(conn, current_version)

            await conn.commit()

    async def _apply_migrations(
        self, conn: aiosqlite.Connection, from_version: int
    ) -> None:
        if from_version < 1:
            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                )
                """
            )

        await conn.execute(
            "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
            (SCHEMA_VERSION,),
        )
        logger.debug(f"Applied key-value store migrations {from_version} -> {SCHEMA_VERSION}")

    @asynccontextmanager
    async def _get_connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Get database connection context manager.

        Raises:
            PersistenceError: If the store is not initialized
        """
        if self._connection is None:
            raise PersistenceError("Key-value store not initialized")
        yield self._connection

    async def get_schema_version(self) -> int:
        async with self._get_connection() as conn:
            cursor = await conn.execute("SELECT MAX(version) FROM schema_version")
            result = await cursor.fetchone()
            return result[0] if result and result[0] is not None else 0

    async def load(self, key: str) -> str | None:
        async with self._get_connection() as conn:
            try:
                cursor = await conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?", (key,)
                )
                row = await cursor.fetchone()
            except aiosqlite.Error as e:
                raise PersistenceError(f"Failed to load {key!r}: {e}") from e
        return row[0] if row else None

    async def save(self, key: str, value: str) -> None:
        async with self._get_connection() as conn:
            try:
                await conn.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value, updated_at = excluded.updated_at
                    """,
                    (key, value, datetime.now().isoformat()),
                )
                await conn.commit()
            except aiosqlite.Error as e:
                raise PersistenceError(f"Failed to save {key!r}: {e}") from e

    async def close(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None


class InMemoryKeyValueStore(KeyValueStore):
    """Dictionary-backed store for tests and ephemeral sessions."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def load(self, key: str) -> str | None:
        return self._data.get(key)

    async def save(self, key: str, value: str) -> None:
        self._data[key] = value
