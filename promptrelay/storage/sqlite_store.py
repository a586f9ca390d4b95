"""
SQLite storage for conversation sessions.
Single portable file, one row per session, the message log kept as JSON.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path

from promptrelay.errors import NotFoundError
from promptrelay.storage.models import (
    ConversationMessage,
    ConversationSession,
    _parse_ts,
    trim_messages,
    utcnow,
)
from promptrelay.storage.session_store import SessionStore

logger = logging.getLogger(__name__)

CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    title TEXT DEFAULT NULL,
    created_at TEXT NOT NULL,
    last_activity_at TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    message_count INTEGER NOT NULL DEFAULT 0,
    max_messages INTEGER NOT NULL DEFAULT 100,
    messages_json TEXT NOT NULL DEFAULT '[]'
);

CREATE INDEX IF NOT EXISTS idx_sessions_user
    ON sessions(user_id, is_active);
CREATE INDEX IF NOT EXISTS idx_sessions_activity
    ON sessions(last_activity_at);
"""


class SQLiteSessionStore(SessionStore):
    """Thread-safe SQLite session store (one connection per operation)."""

    def __init__(self, db_path: str):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        with self._connect() as conn:
            conn.executescript(CREATE_TABLES)
        logger.info("SQLite session store initialized at %s", self.db_path)

    @contextmanager
    def _connect(self):
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> ConversationSession:
        raw = json.loads(row["messages_json"] or "[]")
        return ConversationSession(
            session_id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            created_at=_parse_ts(row["created_at"]),
            last_activity_at=_parse_ts(row["last_activity_at"]),
            is_active=bool(row["is_active"]),
            messages=[ConversationMessage.from_dict(m) for m in raw],
            message_count=row["message_count"],
            max_messages=row["max_messages"],
        )

    def create_session(self, user_id, title=None, max_messages=100):
        session = ConversationSession(user_id=user_id, title=title, max_messages=max_messages)
        with self._connect() as conn:
            conn.execute(
                """INSERT INTO sessions
                   (id, user_id, title, created_at, last_activity_at, is_active,
                    message_count, max_messages, messages_json)
                   VALUES (?, ?, ?, ?, ?, 1, 0, ?, '[]')""",
                (session.session_id, user_id, title,
                 session.created_at.isoformat(), session.last_activity_at.isoformat(),
                 max_messages),
            )
        logger.debug("Created session %s for user %s", session.session_id, user_id)
        return session

    def get_session(self, session_id):
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM sessions WHERE id = ?", (session_id,)
            ).fetchone()
        return self._row_to_session(row) if row else None

    def save_messages(self, session_id, messages):
        with self._connect() as conn:
            row = conn.execute(
                "SELECT max_messages FROM sessions WHERE id = ?", (session_id,)
            ).fetchone()
            if row is None:
                raise NotFoundError(f"Session '{session_id}' not found")
            kept = trim_messages(list(messages), row["max_messages"])
            conn.execute(
                """UPDATE sessions
                   SET messages_json = ?, message_count = ?, last_activity_at = ?
                   WHERE id = ?""",
                (json.dumps([m.to_dict() for m in kept]), len(kept),
                 utcnow().isoformat(), session_id),
            )
        logger.debug("Saved %d messages for session %s", len(kept), session_id)

    def update_title(self, session_id, title):
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE sessions SET title = ? WHERE id = ?", (title, session_id)
            )
            if cur.rowcount == 0:
                raise NotFoundError(f"Session '{session_id}' not found")

    def list_sessions(self, user_id, limit=20):
        with self._connect() as conn:
            rows = conn.execute(
                """SELECT * FROM sessions
                   WHERE user_id = ? AND is_active = 1
                   ORDER BY last_activity_at DESC
                   LIMIT ?""",
                (user_id, limit),
            ).fetchall()
        return [self._row_to_session(r) for r in rows]

    def deactivate(self, session_id):
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE sessions SET is_active = 0, last_activity_at = ? WHERE id = ?",
                (utcnow().isoformat(), session_id),
            )
            return cur.rowcount > 0
