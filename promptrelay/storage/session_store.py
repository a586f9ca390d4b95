"""
Session persistence interface plus the in-memory implementation.

The orchestrator and the session cache only see SessionStore; which one is
wired is decided by `storage.backend` in config.yaml:

    storage:
      backend: sqlite          # sqlite | memory
      sqlite_path: ./data/sessions.db
      max_messages: 100
"""

from __future__ import annotations

import abc
import copy
import logging
import threading

from promptrelay.errors import NotFoundError
from promptrelay.storage.models import (
    ConversationMessage,
    ConversationSession,
    trim_messages,
    utcnow,
)

logger = logging.getLogger(__name__)


class SessionStore(abc.ABC):
    """Durable home of sessions and their message logs."""

    @abc.abstractmethod
    def create_session(
        self, user_id: str, title: str | None = None, max_messages: int = 100
    ) -> ConversationSession:
        ...

    @abc.abstractmethod
    def get_session(self, session_id: str) -> ConversationSession | None:
        """Session by id, inactive ones included. None when unknown."""
        ...

    @abc.abstractmethod
    def save_messages(self, session_id: str, messages: list[ConversationMessage]) -> None:
        """Replace the message log, trimmed to the session's max_messages."""
        ...

    @abc.abstractmethod
    def update_title(self, session_id: str, title: str) -> None:
        ...

    @abc.abstractmethod
    def list_sessions(self, user_id: str, limit: int = 20) -> list[ConversationSession]:
        """Active sessions of a user, most recent activity first."""
        ...

    @abc.abstractmethod
    def deactivate(self, session_id: str) -> bool:
        """Soft delete. Returns False when the session does not exist."""
        ...


class InMemorySessionStore(SessionStore):
    """Process-local store. Used for tests and `storage.backend: memory`."""

    def __init__(self):
        self._sessions: dict[str, ConversationSession] = {}
        self._lock = threading.Lock()

    def create_session(self, user_id, title=None, max_messages=100):
        session = ConversationSession(user_id=user_id, title=title, max_messages=max_messages)
        with self._lock:
            self._sessions[session.session_id] = session
        logger.debug("Created session %s for user %s", session.session_id, user_id)
        return copy.deepcopy(session)

    def get_session(self, session_id):
        with self._lock:
            session = self._sessions.get(session_id)
            return copy.deepcopy(session) if session else None

    def save_messages(self, session_id, messages):
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise NotFoundError(f"Session '{session_id}' not found")
            session.messages = trim_messages(list(messages), session.max_messages)
            session.message_count = len(session.messages)
            session.last_activity_at = utcnow()

    def update_title(self, session_id, title):
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise NotFoundError(f"Session '{session_id}' not found")
            session.title = title

    def list_sessions(self, user_id, limit=20):
        with self._lock:
            owned = [
                s for s in self._sessions.values()
                if s.user_id == user_id and s.is_active
            ]
            owned.sort(key=lambda s: s.last_activity_at, reverse=True)
            return [copy.deepcopy(s) for s in owned[:limit]]

    def deactivate(self, session_id):
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            session.is_active = False
            session.last_activity_at = utcnow()
            return True


def make_session_store(storage_cfg: dict) -> SessionStore:
    """Build the configured store (sqlite by default)."""
    backend = str(storage_cfg.get("backend", "sqlite")).lower()
    if backend == "memory":
        logger.info("Session store: in-memory")
        return InMemorySessionStore()
    if backend == "sqlite":
        from promptrelay.storage.sqlite_store import SQLiteSessionStore
        return SQLiteSessionStore(storage_cfg.get("sqlite_path", "./data/sessions.db"))
    raise ValueError(f"Unknown storage backend '{backend}' (expected sqlite or memory)")
