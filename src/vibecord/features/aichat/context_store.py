"""
Conversation memory for the AI chat feature.

Messages are keyed by (user, channel, persona) so switching persona starts a
fresh conversation. Timestamps are stored as REAL unix seconds, which keeps
comparisons trivial and preserves millisecond ordering between a message and
its reply.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional, Protocol

import aiosqlite

from vibecord.util.logger import get_logger

logger = get_logger("context_store")

CONTEXT_DB_FILE = "aichat_context.db"
DEFAULT_MAX_MESSAGES = 50
CHARS_PER_TOKEN = 4

ROLE_HUMAN = "human"
ROLE_ASSISTANT = "assistant"

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS conversation_context (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        channel_id TEXT NOT NULL,
        persona_name TEXT NOT NULL,
        message TEXT NOT NULL,
        role TEXT NOT NULL CHECK (role IN ('human', 'assistant')),
        timestamp REAL NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_user_channel_persona ON conversation_context (user_id, channel_id, persona_name)",
    "CREATE INDEX IF NOT EXISTS idx_timestamp ON conversation_context (timestamp)",
]


@dataclass(frozen=True)
class ConversationContext:
    """One remembered message."""
    user_id: str
    channel_id: str
    persona_name: str
    message: str
    role: str
    timestamp: datetime

    @property
    def approx_tokens(self) -> int:
        return len(self.message) // CHARS_PER_TOKEN


class ContextStore(Protocol):
    async def get_recent_context(
        self,
        user_id: str,
        channel_id: str,
        persona_name: str,
        *,
        max_messages: int,
        max_age: timedelta,
        max_tokens: int,
    ) -> List[ConversationContext]:
        ...

    async def store_context(self, context: ConversationContext) -> None:
        ...

    async def close(self) -> None:
        ...


class ContextStoreError(Exception):
    """The context database could not be opened or queried."""


def _to_unix(value: datetime) -> float:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


class SQLiteContextStore:
    """
    :class:`ContextStore` backed by a single long-lived aiosqlite connection.

    Lifecycle:
        1. ``await SQLiteContextStore.open(data_dir)``
        2. ``get_recent_context`` / ``store_context``
        3. ``await close()`` at shutdown (idempotent)
    """

    def __init__(self, db_path: Path, connection: aiosqlite.Connection) -> None:
        self.db_path = db_path
        self._conn: Optional[aiosqlite.Connection] = connection
        self._write_lock = asyncio.Lock()

    @classmethod
    async def open(cls, data_dir: Path | str) -> "SQLiteContextStore":
        """Open (creating if needed) ``<data_dir>/aichat_context.db``.

        Raises:
            ContextStoreError: If the database cannot be opened or initialized.
        """
        db_path = Path(data_dir) / CONTEXT_DB_FILE
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = await aiosqlite.connect(db_path)
            for statement in _SCHEMA:
                await conn.execute(statement)
            await conn.commit()
        except (OSError, aiosqlite.Error) as exc:
            raise ContextStoreError(f"open context database {db_path}: {exc}") from exc
        logger.info("[CONTEXT STORE] Context database ready at %s", db_path)
        return cls(db_path, conn)

    @property
    def connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise ContextStoreError("context store is closed")
        return self._conn

    async def store_context(self, context: ConversationContext) -> None:
        async with self._write_lock:
            await self.connection.execute(
                """
                INSERT INTO conversation_context (user_id, channel_id, persona_name, message, role, timestamp)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    context.user_id,
                    context.channel_id,
                    context.persona_name,
                    context.message,
                    context.role,
                    _to_unix(context.timestamp),
                ),
            )
            await self.connection.commit()

    async def get_recent_context(
        self,
        user_id: str,
        channel_id: str,
        persona_name: str,
        *,
        max_messages: int,
        max_age: timedelta,
        max_tokens: int,
    ) -> List[ConversationContext]:
        """
        Return the newest messages for the conversation in chronological order.

        At most ``max_messages`` rows (50 when not positive) younger than
        ``max_age`` (no limit when not positive) are read newest first, and
        reading stops before the approximate token total would exceed
        ``max_tokens`` (no limit when not positive).
        """
        if max_messages <= 0:
            max_messages = DEFAULT_MAX_MESSAGES

        query = """
            SELECT user_id, channel_id, persona_name, message, role, timestamp
            FROM conversation_context
            WHERE user_id = ? AND channel_id = ? AND persona_name = ?
        """
        args: list = [user_id, channel_id, persona_name]
        if max_age > timedelta(0):
            query += " AND timestamp >= ?"
            args.append(_to_unix(datetime.now(timezone.utc) - max_age))
        query += " ORDER BY timestamp DESC, id DESC LIMIT ?"
        args.append(max_messages)

        async with self.connection.execute(query, args) as cursor:
            rows = await cursor.fetchall()

        contexts: List[ConversationContext] = []
        total_tokens = 0
        for row in rows:
            context = ConversationContext(
                user_id=row[0],
                channel_id=row[1],
                persona_name=row[2],
                message=row[3],
                role=row[4],
                timestamp=datetime.fromtimestamp(row[5], tz=timezone.utc),
            )
            if max_tokens > 0 and total_tokens + context.approx_tokens > max_tokens:
                break
            contexts.append(context)
            total_tokens += context.approx_tokens

        contexts.reverse()
        return contexts

    async def clean_old_context(self, max_age: timedelta) -> int:
        """Delete messages older than ``max_age`` and return how many were removed."""
        if max_age <= timedelta(0):
            return 0
        cutoff = _to_unix(datetime.now(timezone.utc) - max_age)
        async with self._write_lock:
            cursor = await self.connection.execute(
                "DELETE FROM conversation_context WHERE timestamp < ?", (cutoff,),
            )
            await self.connection.commit()
        removed = cursor.rowcount
        if removed:
            logger.debug("[CONTEXT STORE] Removed %d old context message(s)", removed)
        return removed

    async def close(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        await conn.close()
        logger.debug("[CONTEXT STORE] Context database closed")
