"""
SQLite persistence layer for llm-compare.

All public methods are async (aiosqlite) so they compose naturally with
FastAPI's async request handlers.

Tables:
  comparisons      one row per prompt submitted to /compare
  model_responses  one row per model result, cascade-deleted with its comparison

Connections come from a fixed-size ConnectionPool that is opened at startup
and handed to ComparisonStore; every operation borrows exactly one connection
and gives it back on every exit path.
"""

import asyncio
import logging
import sqlite3
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Optional

import aiosqlite

from llm_compare.models import (
    ComparisonDetail,
    ComparisonRecord,
    ModelResult,
    StoredModelResponse,
)

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """A connection or transaction failure in the persistence layer."""


# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

_CREATE_COMPARISONS = """
CREATE TABLE IF NOT EXISTS comparisons (
    id          TEXT PRIMARY KEY,
    prompt      TEXT NOT NULL,
    created_at  TEXT NOT NULL
)
"""

_CREATE_MODEL_RESPONSES = """
CREATE TABLE IF NOT EXISTS model_responses (
    id                  TEXT    PRIMARY KEY,
    comparison_id       TEXT    NOT NULL REFERENCES comparisons(id) ON DELETE CASCADE,
    model_name          TEXT    NOT NULL,
    response_text       TEXT,
    prompt_tokens       INTEGER,
    completion_tokens   INTEGER,
    total_tokens        INTEGER,
    response_time_ms    INTEGER,
    estimated_cost      REAL,
    error               TEXT,
    created_at          TEXT    NOT NULL
)
"""

_CREATE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_model_responses_comparison ON model_responses(comparison_id)",
    "CREATE INDEX IF NOT EXISTS idx_comparisons_created_at     ON comparisons(created_at)",
]

_SELECT_RESPONSES = """
SELECT id, comparison_id, model_name, response_text,
       prompt_tokens, completion_tokens, total_tokens,
       response_time_ms, estimated_cost, error, created_at
FROM model_responses
WHERE comparison_id = ?
ORDER BY model_name
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Connection pool
# ---------------------------------------------------------------------------

class ConnectionPool:
    """
    Fixed-size pool of aiosqlite connections.

    open() must be awaited before use and close() at shutdown.  acquire()
    blocks while every connection is checked out.
    """

    def __init__(self, database_path: str, size: int = 5) -> None:
        if size < 1:
            raise ValueError("pool size must be at least 1")
        self.database_path = database_path
        self.size = size
        self._idle: asyncio.Queue[aiosqlite.Connection] = asyncio.Queue()
        self._all: list[aiosqlite.Connection] = []

    @property
    def is_open(self) -> bool:
        return bool(self._all)

    async def open(self) -> None:
        if self.is_open:
            return
        Path(self.database_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            for i in range(self.size):
                conn = await aiosqlite.connect(self.database_path)
                self._all.append(conn)
                conn.row_factory = aiosqlite.Row
                async with conn.execute("PRAGMA foreign_keys = ON"):
                    pass
                # journal_mode persists in the file; set it before the other
                # connections open.
                if i == 0:
                    async with conn.execute("PRAGMA journal_mode = WAL") as cursor:
                        await cursor.fetchone()
                self._idle.put_nowait(conn)
        except sqlite3.Error as exc:
            await self.close()
            raise StorageError(f"Could not open database {self.database_path}: {exc}") from exc
        logger.info("Connection pool ready | path=%s size=%d", self.database_path, self.size)

    async def close(self) -> None:
        conns, self._all = self._all, []
        self._idle = asyncio.Queue()
        for conn in conns:
            await conn.close()

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[aiosqlite.Connection]:
        if not self.is_open:
            raise StorageError("Connection pool is not open")
        conn = await self._idle.get()
        try:
            yield conn
        finally:
            self._idle.put_nowait(conn)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class ComparisonStore:
    """Reads and writes comparisons through an injected ConnectionPool."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    async def init_schema(self) -> None:
        """Create tables and indexes if they don't exist."""
        async with self._pool.acquire() as db:
            try:
                await db.execute(_CREATE_COMPARISONS)
                await db.execute(_CREATE_MODEL_RESPONSES)
                for idx_sql in _CREATE_INDEXES:
                    await db.execute(idx_sql)
                await db.commit()
            except sqlite3.Error as exc:
                await db.rollback()
                raise StorageError(f"Schema initialisation failed: {exc}") from exc
        logger.info("Database schema ready at %s", self._pool.database_path)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def store(self, prompt: str, results: list[ModelResult]) -> str:
        """
        Insert one comparison row plus one row per result in a single
        transaction.  Returns the new comparison id.

        Raises StorageError (after rolling back) if any statement fails.
        """
        comparison_id = str(uuid.uuid4())
        ts = _now()

        async with self._pool.acquire() as db:
            try:
                await db.execute("BEGIN IMMEDIATE")
                await db.execute(
                    "INSERT INTO comparisons (id, prompt, created_at) VALUES (?, ?, ?)",
                    (comparison_id, prompt, ts),
                )
                await db.executemany(
                    """
                    INSERT INTO model_responses (
                        id, comparison_id, model_name, response_text,
                        prompt_tokens, completion_tokens, total_tokens,
                        response_time_ms, estimated_cost, error, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            str(uuid.uuid4()),
                            comparison_id,
                            r.model_name,
                            r.response_text,
                            r.prompt_tokens,
                            r.completion_tokens,
                            r.total_tokens,
                            r.response_time_ms,
                            r.estimated_cost,
                            r.error,
                            ts,
                        )
                        for r in results
                    ],
                )
                await db.commit()
            except Exception as exc:
                await db.rollback()
                raise StorageError(f"Failed to save comparison: {exc}") from exc
            finally:
                # Cancellation skips the except branch above.
                if db.in_transaction:
                    await db.rollback()

        logger.debug("Stored comparison %s with %d responses", comparison_id, len(results))
        return comparison_id

    async def delete(self, comparison_id: str) -> bool:
        """Delete a comparison; its model_responses go with it.  False if absent."""
        async with self._pool.acquire() as db:
            try:
                cursor = await db.execute(
                    "DELETE FROM comparisons WHERE id = ?", (comparison_id,)
                )
                await db.commit()
            except sqlite3.Error as exc:
                await db.rollback()
                raise StorageError(f"Failed to delete comparison: {exc}") from exc
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def fetch_by_id(self, comparison_id: str) -> Optional[ComparisonDetail]:
        async with self._pool.acquire() as db:
            try:
                row = await (
                    await db.execute(
                        "SELECT id, prompt, created_at FROM comparisons WHERE id = ?",
                        (comparison_id,),
                    )
                ).fetchone()
                if row is None:
                    return None
                return await self._detail(db, row)
            except sqlite3.Error as exc:
                raise StorageError(f"Failed to fetch comparison: {exc}") from exc

    async def fetch_recent(self, limit: int = 20) -> list[ComparisonDetail]:
        """Most recent comparisons first, each with its responses."""
        async with self._pool.acquire() as db:
            try:
                rows = await (
                    await db.execute(
                        """
                        SELECT id, prompt, created_at FROM comparisons
                        ORDER BY created_at DESC, rowid DESC
                        LIMIT ?
                        """,
                        (limit,),
                    )
                ).fetchall()
                return [await self._detail(db, row) for row in rows]
            except sqlite3.Error as exc:
                raise StorageError(f"Failed to fetch history: {exc}") from exc

    @staticmethod
    async def _detail(db: aiosqlite.Connection, row: aiosqlite.Row) -> ComparisonDetail:
        response_rows = await (await db.execute(_SELECT_RESPONSES, (row["id"],))).fetchall()
        return ComparisonDetail(
            comparison=ComparisonRecord(
                id=row["id"],
                prompt=row["prompt"],
                created_at=row["created_at"],
            ),
            responses=[
                StoredModelResponse(
                    id=r["id"],
                    comparison_id=r["comparison_id"],
                    model_name=r["model_name"],
                    response_text=r["response_text"] or "",
                    prompt_tokens=r["prompt_tokens"],
                    completion_tokens=r["completion_tokens"],
                    total_tokens=r["total_tokens"],
                    response_time_ms=r["response_time_ms"],
                    estimated_cost=r["estimated_cost"],
                    error=r["error"],
                    created_at=r["created_at"],
                )
                for r in response_rows
            ],
        )
