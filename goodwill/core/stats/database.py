"""
SQLite persistence for voice sessions, activity counters and guild settings.

One shared ``aiosqlite`` connection in autocommit mode. Multi-statement
writes go through ``transaction()``, which holds an ``asyncio.Lock`` so
statements and reads from other tasks never interleave with an open
transaction.
Any ``aiosqlite.Error`` is re-raised as ``DatabaseError``.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Iterable, List, Optional

import aiosqlite

from goodwill.core.errors import DatabaseError

logger = logging.getLogger("goodwill.database")

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS voice_sessions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        guild_id INTEGER NOT NULL,
        username TEXT NOT NULL DEFAULT '',
        channel_id INTEGER,
        is_active INTEGER NOT NULL DEFAULT 1,
        is_afk INTEGER NOT NULL DEFAULT 0,
        is_muted_or_deafened INTEGER NOT NULL DEFAULT 0,
        join_time TEXT NOT NULL,
        last_status_change TEXT NOT NULL,
        left_at TEXT
    )
    """,
    # At most one active session per (user, guild)
    """
    CREATE UNIQUE INDEX IF NOT EXISTS idx_voice_sessions_active
        ON voice_sessions (user_id, guild_id) WHERE is_active = 1
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_voice_sessions_status
        ON voice_sessions (is_active, last_status_change)
    """,
    """
    CREATE TABLE IF NOT EXISTS guild_settings (
        guild_id INTEGER PRIMARY KEY,
        guild_name TEXT NOT NULL DEFAULT '',
        afk_channel_id INTEGER,
        updated_at TEXT NOT NULL
    )
    """,
]

ACTIVITY_TABLE_TEMPLATE = """
    CREATE TABLE IF NOT EXISTS {table} (
        user_id INTEGER NOT NULL,
        guild_id INTEGER NOT NULL,
        period_start TEXT NOT NULL,
        username TEXT NOT NULL DEFAULT '',
        voice_time_seconds INTEGER NOT NULL DEFAULT 0,
        afk_time_seconds INTEGER NOT NULL DEFAULT 0,
        muted_deafened_time_seconds INTEGER NOT NULL DEFAULT 0,
        message_count INTEGER NOT NULL DEFAULT 0,
        PRIMARY KEY (user_id, guild_id, period_start)
    )
"""

ACTIVITY_TABLES = ("daily_activity", "weekly_activity", "monthly_activity")


class Database:
    """Async SQLite wrapper shared by the stats modules."""

    def __init__(self, path: str):
        self.path = path
        self.conn: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()
        self._tx_owner: Optional[asyncio.Task] = None
        self._savepoint_depth = 0

    @property
    def is_connected(self) -> bool:
        return self.conn is not None

    async def connect(self):
        """Open the connection, set pragmas and create the schema."""
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        try:
            # isolation_level=None: autocommit, BEGIN/COMMIT issued explicitly
            self.conn = await aiosqlite.connect(self.path, isolation_level=None)
            self.conn.row_factory = aiosqlite.Row
            await self.conn.execute("PRAGMA journal_mode=WAL;")
            await self.conn.execute("PRAGMA synchronous=NORMAL;")
            await self.conn.execute("PRAGMA busy_timeout=5000;")
            await self._create_schema()
        except aiosqlite.Error as e:
            raise DatabaseError(
                "Could not open the activity database.",
                f"Failed to open database {self.path}: {e}",
                original_error=e
            ) from e

        logger.info(f"📦 Database ready at {self.path}")

    async def _create_schema(self):
        for statement in SCHEMA:
            await self.conn.execute(statement)
        for table in ACTIVITY_TABLES:
            await self.conn.execute(ACTIVITY_TABLE_TEMPLATE.format(table=table))

    async def close(self):
        if self.conn:
            await self.conn.close()
            self.conn = None
            logger.info("Database connection closed")

    def _require_conn(self) -> aiosqlite.Connection:
        if self.conn is None:
            raise DatabaseError(
                "The activity database is not available.",
                "Database used before connect()"
            )
        return self.conn

    def _in_own_transaction(self) -> bool:
        return self._tx_owner is not None and self._tx_owner is asyncio.current_task()

    @asynccontextmanager
    async def transaction(self):
        """
        BEGIN on enter, COMMIT on success, ROLLBACK on exception.

        Nested use by the task that already holds the transaction becomes a
        SAVEPOINT, so an inner failure only undoes the inner statements.
        """
        conn = self._require_conn()

        if self._in_own_transaction():
            self._savepoint_depth += 1
            name = f"sp_{self._savepoint_depth}"
            try:
                await conn.execute(f"SAVEPOINT {name}")
                try:
                    yield self
                except BaseException:
                    await conn.execute(f"ROLLBACK TO {name}")
                    await conn.execute(f"RELEASE {name}")
                    raise
                await conn.execute(f"RELEASE {name}")
            except aiosqlite.Error as e:
                raise DatabaseError(
                    "A database error occurred.",
                    f"Savepoint {name} failed: {e}",
                    original_error=e
                ) from e
            finally:
                self._savepoint_depth -= 1
            return

        async with self._lock:
            self._tx_owner = asyncio.current_task()
            try:
                await conn.execute("BEGIN IMMEDIATE")
                try:
                    yield self
                except BaseException:
                    await conn.execute("ROLLBACK")
                    raise
                await conn.execute("COMMIT")
            except aiosqlite.Error as e:
                raise DatabaseError(
                    "A database error occurred.",
                    f"Transaction failed: {e}",
                    original_error=e
                ) from e
            finally:
                self._tx_owner = None

    async def execute(self, sql: str, params: Iterable[Any] = ()) -> int:
        """Execute a write statement. Returns the affected row count."""
        conn = self._require_conn()
        try:
            if self._in_own_transaction():
                cursor = await conn.execute(sql, params)
            else:
                async with self._lock:
                    cursor = await conn.execute(sql, params)
            rowcount = cursor.rowcount
            await cursor.close()
            return rowcount
        except aiosqlite.Error as e:
            raise DatabaseError(
                "A database error occurred.",
                f"Statement failed: {e} | {sql.strip().splitlines()[0]}",
                original_error=e
            ) from e

    async def insert(self, sql: str, params: Iterable[Any] = ()) -> int:
        """Execute an INSERT. Returns the new row id."""
        conn = self._require_conn()
        try:
            if self._in_own_transaction():
                cursor = await conn.execute(sql, params)
            else:
                async with self._lock:
                    cursor = await conn.execute(sql, params)
            row_id = cursor.lastrowid
            await cursor.close()
            return row_id
        except aiosqlite.Error as e:
            raise DatabaseError(
                "A database error occurred.",
                f"Insert failed: {e}",
                original_error=e
            ) from e

    async def _query(self, sql: str, params: Iterable[Any], fetch_all: bool):
        conn = self._require_conn()
        try:
            if self._in_own_transaction():
                async with conn.execute(sql, params) as cursor:
                    return await (cursor.fetchall() if fetch_all else cursor.fetchone())
            # Wait for another task's open transaction so uncommitted rows stay invisible
            async with self._lock:
                async with conn.execute(sql, params) as cursor:
                    return await (cursor.fetchall() if fetch_all else cursor.fetchone())
        except aiosqlite.Error as e:
            raise DatabaseError(
                "A database error occurred.",
                f"Query failed: {e}",
                original_error=e
            ) from e

    async def fetchone(self, sql: str, params: Iterable[Any] = ()) -> Optional[aiosqlite.Row]:
        return await self._query(sql, params, fetch_all=False)

    async def fetchall(self, sql: str, params: Iterable[Any] = ()) -> List[aiosqlite.Row]:
        return list(await self._query(sql, params, fetch_all=True))
