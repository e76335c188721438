"""Chat history persistence collaborator. Called once per finished execution, fire-and-forget."""

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import aiosqlite

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatTurn:
    """One user message and the assistant answer it produced."""

    execution_id: str
    thread_id: str | None
    user_id: str | None
    user_content: str
    assistant_text: str
    model: str | None = None
    agent_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class ChatHistoryStore(Protocol):
    async def save_turn(self, turn: ChatTurn) -> None: ...


_SCHEMA = """
CREATE TABLE IF NOT EXISTS chat_messages (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    execution_id  TEXT    NOT NULL,
    thread_id     TEXT,
    user_id       TEXT,
    role          TEXT    NOT NULL,
    content       TEXT    NOT NULL,
    model         TEXT,
    agent_id      TEXT,
    metadata      TEXT    NOT NULL DEFAULT '{}',
    created_at    REAL    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_cm_thread_created ON chat_messages(thread_id, created_at);
CREATE INDEX IF NOT EXISTS idx_cm_user ON chat_messages(user_id);
"""


class SqliteChatHistoryStore:
    """SQLite-backed chat history. One connection per instance."""

    def __init__(self, db_path: Path, busy_timeout: int = 5000) -> None:
        self._db_path = db_path
        self._busy_timeout = busy_timeout
        self._conn: aiosqlite.Connection | None = None

    async def _ensure_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = await aiosqlite.connect(str(self._db_path))
            await self._conn.execute("PRAGMA journal_mode=WAL")
            await self._conn.execute("PRAGMA synchronous=NORMAL")
            await self._conn.execute(f"PRAGMA busy_timeout={self._busy_timeout}")
            await self._conn.executescript(_SCHEMA)
            await self._conn.commit()
        return self._conn

    async def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def save_turn(self, turn: ChatTurn) -> None:
        """Insert the user message and the assistant answer in one transaction."""
        conn = await self._ensure_conn()
        now = time.time()
        meta = json.dumps(turn.metadata, ensure_ascii=False, default=str)
        await conn.executemany(
            """
            INSERT INTO chat_messages
                (execution_id, thread_id, user_id, role, content,
                 model, agent_id, metadata, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    turn.execution_id,
                    turn.thread_id,
                    turn.user_id,
                    "user",
                    turn.user_content,
                    None,
                    None,
                    meta,
                    now,
                ),
                (
                    turn.execution_id,
                    turn.thread_id,
                    turn.user_id,
                    "assistant",
                    turn.assistant_text,
                    turn.model,
                    turn.agent_id,
                    meta,
                    now,
                ),
            ],
        )
        await conn.commit()

    async def get_thread(self, thread_id: str, limit: int = 50) -> list[dict[str, Any]]:
        """Most recent messages of a thread, oldest first, as {role, content} dicts."""
        conn = await self._ensure_conn()
        cursor = await conn.execute(
            """
            SELECT role, content FROM (
                SELECT id, role, content FROM chat_messages
                WHERE thread_id = ?
                ORDER BY id DESC
                LIMIT ?
            ) ORDER BY id
            """,
            (thread_id, limit),
        )
        rows = await cursor.fetchall()
        return [{"role": row[0], "content": row[1]} for row in rows]
