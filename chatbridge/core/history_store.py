"""
Lightweight SQLite chat history, keyed by session id.

Append-only log of {"role", "content"} records, loaded in full when a chat starts.
Creates data/chat_history.db (relative to project root) unless HISTORY_DB_PATH is absolute.
"""

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from chatbridge.core.config import HISTORY_DB_PATH

logger = logging.getLogger(__name__)

_ROOT = Path(__file__).resolve().parent.parent.parent
_TABLE = "messages"


class HistoryStore:
    def __init__(self, db_path: str | Path = HISTORY_DB_PATH) -> None:
        path = Path(db_path)
        self.db_path = path if path.is_absolute() else _ROOT / path
        self._initialized = False

    def _get_conn(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path))
        if not self._initialized:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_TABLE} (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id TEXT NOT NULL,
                    role TEXT NOT NULL,
                    content TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.commit()
            self._initialized = True
        return conn

    def append_message(self, session_id: str, role: str, content: str) -> None:
        """Append one message to the session's history."""
        if not session_id or not isinstance(session_id, str):
            logger.info("[history_store:append_message] skip invalid session_id=%r", session_id)
            return
        conn = self._get_conn()
        try:
            conn.execute(
                f"INSERT INTO {_TABLE} (session_id, role, content, created_at) VALUES (?, ?, ?, ?)",
                (session_id, role, content or "", datetime.now(timezone.utc).isoformat()),
            )
            conn.commit()
        finally:
            conn.close()
        logger.info("[history_store:append_message] session_id=%s role=%s content_len=%d", session_id[:16], role, len(content or ""))

    def get_history(self, session_id: str) -> list[dict[str, Any]]:
        """Return all messages for the session, oldest first."""
        if not session_id or not isinstance(session_id, str):
            return []
        conn = self._get_conn()
        try:
            cur = conn.execute(
                f"SELECT role, content FROM {_TABLE} WHERE session_id = ? ORDER BY id ASC",
                (session_id,),
            )
            out = [{"role": role, "content": content} for role, content in cur.fetchall()]
        finally:
            conn.close()
        logger.info("[history_store:get_history] session_id=%s messages=%d", session_id[:16], len(out))
        return out

    def clear_history(self, session_id: str) -> int:
        """Delete the session's messages. Returns the number removed."""
        conn = self._get_conn()
        try:
            cur = conn.execute(f"DELETE FROM {_TABLE} WHERE session_id = ?", (session_id,))
            conn.commit()
            removed = cur.rowcount
        finally:
            conn.close()
        logger.info("[history_store:clear_history] session_id=%s removed=%d", session_id[:16], removed)
        return removed
