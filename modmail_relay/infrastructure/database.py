from __future__ import annotations
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

import mysql.connector

from .. import settings
from ..domain.entities import (
    DB_DATETIME_FORMAT,
    Thread,
    ThreadMessage,
    ThreadMessageType,
    ThreadStatus,
)
from ..domain.errors import PersistenceError

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_db_connection():
    """Get a MySQL database connection."""
    try:
        conn = mysql.connector.connect(
            host=settings.MYSQL_HOST,
            user=settings.MYSQL_USER,
            password=settings.MYSQL_PASSWORD,
            database=settings.MYSQL_DATABASE,
            port=settings.MYSQL_PORT,
        )
        return conn
    except mysql.connector.Error as err:
        logger.error("MySQL connection error: %s", err)
        return None


def init_db() -> None:
    """Initialize database tables if they do not exist."""
    conn = get_db_connection()
    if not conn:
        logger.warning("Database unreachable, skipping table initialization")
        return

    cursor = conn.cursor()
    try:
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS threads (
                id VARCHAR(36) PRIMARY KEY,
                status TINYINT NOT NULL,
                user_id BIGINT NOT NULL,
                user_name VARCHAR(128) NOT NULL,
                channel_id BIGINT NULL,
                created_at DATETIME NOT NULL,
                INDEX threads_status_user_id (status, user_id),
                INDEX threads_status_channel_id (status, channel_id)
            ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;
            """
        )
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS thread_messages (
                id INT AUTO_INCREMENT PRIMARY KEY,
                thread_id VARCHAR(36) NOT NULL,
                message_type TINYINT NOT NULL,
                user_id BIGINT NULL,
                user_name VARCHAR(128) NOT NULL,
                body MEDIUMTEXT NOT NULL,
                is_anonymous TINYINT NOT NULL DEFAULT 0,
                dm_message_id BIGINT NULL,
                created_at DATETIME NOT NULL,
                INDEX thread_messages_thread_dm (thread_id, dm_message_id),
                FOREIGN KEY (thread_id) REFERENCES threads(id) ON DELETE CASCADE
            ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;
            """
        )
        conn.commit()
    except mysql.connector.Error as err:
        logger.error("Table creation error: %s", err)
    finally:
        cursor.close()
        conn.close()


class TranscriptStore:
    """Thread transcripts and thread status, backed by a DB-API connection.

    ``connect`` is called once per operation and must return a fresh
    connection (or ``None`` when the database is unavailable). Every public
    method is a coroutine; the blocking driver calls run in a worker thread.
    """

    def __init__(self, connect: Callable[[], Any] = get_db_connection, clock: Callable[[], datetime] = utcnow):
        self._connect = connect
        self._clock = clock

    def _execute(self, work: Callable[[Any], Any]) -> Any:
        conn = self._connect()
        if not conn:
            raise PersistenceError("Database connection is not available")
        cursor = conn.cursor(dictionary=True)
        try:
            result = work(cursor)
            conn.commit()
            return result
        except mysql.connector.Error as err:
            logger.error("Database error: %s", err)
            raise
        finally:
            cursor.close()
            conn.close()

    async def _run(self, work: Callable[[Any], Any]) -> Any:
        return await asyncio.to_thread(self._execute, work)

    def _now(self) -> str:
        return self._clock().astimezone(timezone.utc).strftime(DB_DATETIME_FORMAT)

    async def add_thread_message(
        self,
        thread_id: str,
        message_type: ThreadMessageType,
        user_id: Optional[int],
        user_name: str,
        body: str,
        is_anonymous: bool = False,
        dm_message_id: Optional[int] = None,
    ) -> int:
        created_at = self._now()

        def work(cursor) -> int:
            cursor.execute(
                "INSERT INTO thread_messages "
                "(thread_id, message_type, user_id, user_name, body, is_anonymous, dm_message_id, created_at) "
                "VALUES (%s, %s, %s, %s, %s, %s, %s, %s)",
                (
                    thread_id,
                    int(message_type),
                    user_id,
                    user_name,
                    body,
                    1 if is_anonymous else 0,
                    dm_message_id,
                    created_at,
                ),
            )
            return cursor.lastrowid

        return await self._run(work)

    async def update_thread_message_body(self, thread_id: str, dm_message_id: int, body: str) -> int:
        def work(cursor) -> int:
            cursor.execute(
                "UPDATE thread_messages SET body = %s WHERE thread_id = %s AND dm_message_id = %s",
                (body, thread_id, dm_message_id),
            )
            return cursor.rowcount

        return await self._run(work)

    async def delete_thread_messages(self, thread_id: str, dm_message_id: int) -> int:
        def work(cursor) -> int:
            cursor.execute(
                "DELETE FROM thread_messages WHERE thread_id = %s AND dm_message_id = %s",
                (thread_id, dm_message_id),
            )
            return cursor.rowcount

        return await self._run(work)

    async def get_thread_messages(self, thread_id: str) -> List[ThreadMessage]:
        def work(cursor) -> List[ThreadMessage]:
            cursor.execute(
                "SELECT * FROM thread_messages WHERE thread_id = %s ORDER BY created_at ASC, id ASC",
                (thread_id,),
            )
            return [ThreadMessage.from_row(row) for row in cursor.fetchall()]

        return await self._run(work)

    async def set_thread_status(self, thread_id: str, status: ThreadStatus) -> None:
        def work(cursor) -> None:
            cursor.execute(
                "UPDATE threads SET status = %s WHERE id = %s",
                (int(status), thread_id),
            )

        await self._run(work)

    async def _find_thread(self, where: str, params: tuple) -> Optional[Thread]:
        def work(cursor) -> Optional[Thread]:
            cursor.execute(f"SELECT * FROM threads WHERE {where} LIMIT 1", params)
            row = cursor.fetchone()
            return Thread.from_row(row) if row else None

        return await self._run(work)

    async def get_thread(self, thread_id: str) -> Optional[Thread]:
        return await self._find_thread("id = %s", (thread_id,))

    async def find_open_thread_by_user_id(self, user_id: int) -> Optional[Thread]:
        return await self._find_thread("status = %s AND user_id = %s", (int(ThreadStatus.OPEN), user_id))

    async def find_open_thread_by_channel_id(self, channel_id: int) -> Optional[Thread]:
        return await self._find_thread("status = %s AND channel_id = %s", (int(ThreadStatus.OPEN), channel_id))
