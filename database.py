import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Dict, List, Optional

import aiosqlite

from config import SQLITE_BUSY_TIMEOUT, TOMBSTONE_TEXT
from exceptions import StorageUnavailable
from replies import Reply
from threads import Thread
from utils import new_id, timestamp

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS threads (
    thread_id   TEXT PRIMARY KEY,
    board       TEXT NOT NULL,
    text        TEXT NOT NULL,
    secret_hash TEXT NOT NULL,
    created_on  REAL NOT NULL,
    bumped_on   REAL NOT NULL,
    reported    BOOLEAN NOT NULL DEFAULT FALSE
);

CREATE INDEX IF NOT EXISTS idx_threads_board_bumped
    ON threads (board, bumped_on DESC, thread_id);

CREATE TABLE IF NOT EXISTS replies (
    position    INTEGER PRIMARY KEY AUTOINCREMENT,
    reply_id    TEXT NOT NULL UNIQUE,
    thread_id   TEXT NOT NULL REFERENCES threads (thread_id) ON DELETE CASCADE,
    text        TEXT NOT NULL,
    secret_hash TEXT NOT NULL,
    created_on  REAL NOT NULL,
    reported    BOOLEAN NOT NULL DEFAULT FALSE
);

CREATE INDEX IF NOT EXISTS idx_replies_thread
    ON replies (thread_id, position);
"""


def _reply_from_row(row: aiosqlite.Row) -> Reply:
    return Reply(
        text=row["text"],
        secret_hash=row["secret_hash"],
        reply_id=row["reply_id"],
        created_on=row["created_on"],
        reported=bool(row["reported"]),
    )


def _thread_from_row(row: aiosqlite.Row, replies: List[Reply]) -> Thread:
    return Thread(
        board=row["board"],
        text=row["text"],
        secret_hash=row["secret_hash"],
        thread_id=row["thread_id"],
        created_on=row["created_on"],
        bumped_on=row["bumped_on"],
        reported=bool(row["reported"]),
        replies=replies,
    )


class SQLiteThreadStore:
    """
    Thread store backed by SQLite.

    Replies live in their own table keyed by thread, so moderation touches a
    single row and never rewrites the thread's other replies. Appending a reply
    and bumping the parent happen inside one immediate transaction.
    """

    def __init__(self, db_path: str, clock: Callable[[], float] = timestamp,
                 busy_timeout: float = SQLITE_BUSY_TIMEOUT):
        self.db_path = db_path
        self.clock = clock
        self.busy_timeout = busy_timeout

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        try:
            async with aiosqlite.connect(self.db_path, timeout=self.busy_timeout) as conn:
                conn.row_factory = aiosqlite.Row
                await conn.execute("PRAGMA foreign_keys = ON")
                yield conn
        except aiosqlite.OperationalError as e:
            logger.error("SQLite operation failed on %s: %s", self.db_path, e)
            raise StorageUnavailable(str(e)) from e

    async def initialize(self):
        async with self.connection() as conn:
            await conn.execute("PRAGMA journal_mode = WAL")
            await conn.executescript(SCHEMA)
            await conn.commit()
        logger.info("Thread store ready at %s", self.db_path)

    async def close(self):
        # Connections are per operation; nothing is held open.
        return None

    async def execute_update(self, query: str, params: tuple = ()) -> int:
        async with self.connection() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            rowcount = cursor.rowcount
            await cursor.close()
            return rowcount

    async def create_thread(self, board: str, text: str, secret_hash: str) -> Thread:
        now = self.clock()
        thread = Thread(board, text, secret_hash, created_on=now, bumped_on=now)
        await self.execute_update("""
            INSERT INTO threads (thread_id, board, text, secret_hash, created_on, bumped_on, reported)
            VALUES (?, ?, ?, ?, ?, ?, FALSE)
        """, (thread.thread_id, board, text, secret_hash, thread.created_on, thread.bumped_on))
        return thread

    async def append_reply(self, thread_id: str, text: str, secret_hash: str) -> Optional[Reply]:
        async with self.connection() as conn:
            await conn.execute("BEGIN IMMEDIATE")
            try:
                now = self.clock()
                cursor = await conn.execute(
                    "UPDATE threads SET bumped_on = MAX(bumped_on, ?) WHERE thread_id = ?",
                    (now, thread_id)
                )
                if cursor.rowcount == 0:
                    await conn.rollback()
                    return None

                reply = Reply(text, secret_hash, reply_id=new_id(), created_on=now)
                await conn.execute("""
                    INSERT INTO replies (reply_id, thread_id, text, secret_hash, created_on, reported)
                    VALUES (?, ?, ?, ?, ?, FALSE)
                """, (reply.reply_id, thread_id, text, secret_hash, reply.created_on))
                await conn.commit()
                return reply
            except BaseException:
                await conn.rollback()
                raise

    async def set_thread_reported(self, thread_id: str) -> bool:
        updated = await self.execute_update(
            "UPDATE threads SET reported = TRUE WHERE thread_id = ?",
            (thread_id,)
        )
        return updated > 0

    async def set_reply_reported(self, thread_id: str, reply_id: str) -> bool:
        updated = await self.execute_update(
            "UPDATE replies SET reported = TRUE WHERE thread_id = ? AND reply_id = ?",
            (thread_id, reply_id)
        )
        return updated > 0

    async def tombstone_reply(self, thread_id: str, reply_id: str) -> bool:
        updated = await self.execute_update(
            "UPDATE replies SET text = ? WHERE thread_id = ? AND reply_id = ?",
            (TOMBSTONE_TEXT, thread_id, reply_id)
        )
        return updated > 0

    async def delete_thread(self, thread_id: str) -> bool:
        deleted = await self.execute_update(
            "DELETE FROM threads WHERE thread_id = ?",
            (thread_id,)
        )
        return deleted > 0

    async def list_recent_by_board(self, board: str, limit: int) -> List[Thread]:
        async with self.connection() as conn:
            # One read transaction so threads and their replies are a consistent snapshot.
            await conn.execute("BEGIN")
            cursor = await conn.execute("""
                SELECT * FROM threads
                WHERE board = ?
                ORDER BY bumped_on DESC, thread_id ASC
                LIMIT ?
            """, (board, max(limit, 0)))
            rows = await cursor.fetchall()
            await cursor.close()
            if not rows:
                await conn.commit()
                return []

            thread_ids = [row["thread_id"] for row in rows]
            placeholders = ", ".join("?" for _ in thread_ids)
            cursor = await conn.execute(
                f"SELECT * FROM replies WHERE thread_id IN ({placeholders}) ORDER BY position ASC",
                tuple(thread_ids)
            )
            reply_rows = await cursor.fetchall()
            await cursor.close()
            await conn.commit()

        replies_by_thread: Dict[str, List[Reply]] = {thread_id: [] for thread_id in thread_ids}
        for reply_row in reply_rows:
            replies_by_thread[reply_row["thread_id"]].append(_reply_from_row(reply_row))

        return [_thread_from_row(row, replies_by_thread[row["thread_id"]]) for row in rows]

    async def get_thread(self, thread_id: str) -> Optional[Thread]:
        async with self.connection() as conn:
            await conn.execute("BEGIN")
            cursor = await conn.execute(
                "SELECT * FROM threads WHERE thread_id = ?",
                (thread_id,)
            )
            row = await cursor.fetchone()
            await cursor.close()
            if not row:
                await conn.commit()
                return None

            cursor = await conn.execute(
                "SELECT * FROM replies WHERE thread_id = ? ORDER BY position ASC",
                (thread_id,)
            )
            reply_rows = await cursor.fetchall()
            await cursor.close()
            await conn.commit()

        return _thread_from_row(row, [_reply_from_row(r) for r in reply_rows])

    async def get_reply(self, thread_id: str, reply_id: str) -> Optional[Reply]:
        async with self.connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM replies WHERE thread_id = ? AND reply_id = ?",
                (thread_id, reply_id)
            )
            row = await cursor.fetchone()
            await cursor.close()
        return _reply_from_row(row) if row else None

    async def count_threads(self) -> int:
        """Number of stored threads, used by the health check."""
        async with self.connection() as conn:
            cursor = await conn.execute("SELECT COUNT(*) AS count FROM threads")
            row = await cursor.fetchone()
            await cursor.close()
        return row["count"]
