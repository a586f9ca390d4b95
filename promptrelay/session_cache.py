"""
Session context cache: write-behind message cache in front of the
SessionStore, plus the token-budgeted context window strategies inject as
prior turns.

Reads are served from memory (loaded from the store on miss). Appends land
in memory immediately and reach the store when the FlushPolicy says so,
by default once a user+assistant pair is complete. Entries idle longer
than `memory.cache_ttl_seconds` are flushed and dropped.

    memory:
      max_context_tokens: 2000
      flush_every: 2
      cache_ttl_seconds: 1800
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field

from promptrelay.errors import NotFoundError
from promptrelay.storage.models import ConversationMessage, sort_messages, trim_messages
from promptrelay.storage.session_store import SessionStore
from promptrelay.tokens import estimate_message_tokens, summarize_messages

logger = logging.getLogger(__name__)


class FlushPolicy:
    """Decides when pending appends are written through to the store."""

    def __init__(self, flush_every: int = 2):
        self.flush_every = max(1, int(flush_every))

    def should_flush(self, pending_count: int, last_role: str) -> bool:
        return last_role == "assistant" and pending_count >= self.flush_every


def _role_content(m) -> tuple[str, str]:
    if isinstance(m, dict):
        return m.get("role", ""), str(m.get("content", ""))
    return m.role, m.content


def drop_current_turn(messages: list, prompt: str) -> list:
    """Remove a trailing user message equal to the prompt being answered."""
    if messages:
        role, content = _role_content(messages[-1])
        if role == "user" and content == prompt:
            return messages[:-1]
    return messages


def build_context_window(
    messages: list[ConversationMessage], max_tokens: int, window: int = 10
) -> list[dict]:
    """
    Newest-first walk over the last `window` messages, keeping each one while
    the running token total stays within max_tokens. Whatever of the window
    did not fit is folded into one leading system summary, which is not
    charged against the budget.
    """
    if window <= 0 or not messages:
        return []
    recent = sort_messages(messages)[-window:]

    kept: list[ConversationMessage] = []
    used = 0
    for m in reversed(recent):
        cost = estimate_message_tokens(m.role, m.content)
        if used + cost > max_tokens:
            break
        used += cost
        kept.append(m)
    kept.reverse()

    context: list[dict] = []
    older = recent[: len(recent) - len(kept)]
    if older:
        summary = summarize_messages(older)
        if summary:
            context.append({"role": "system", "content": summary})
    context.extend({"role": m.role, "content": m.content} for m in kept)
    return context


@dataclass
class _CacheEntry:
    messages: list[ConversationMessage]
    max_messages: int
    pending: int = 0
    touched: float = field(default_factory=time.monotonic)


class SessionContextCache:
    def __init__(
        self,
        store: SessionStore,
        policy: FlushPolicy | None = None,
        ttl_seconds: float = 1800,
        clock=time.monotonic,
    ):
        self.store = store
        self.policy = policy or FlushPolicy()
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    def _discard_lock(self, session_id: str) -> None:
        """Forget the lock of a session that never made it into the cache."""
        lock = self._locks.get(session_id)
        if session_id not in self._entries and lock is not None and not lock.locked():
            del self._locks[session_id]

    def _busy(self, session_id: str) -> bool:
        lock = self._locks.get(session_id)
        return lock is not None and lock.locked()

    def _expire(self) -> None:
        """Flush and drop idle entries (caller must not hold their locks)."""
        now = self._clock()
        stale = [
            sid for sid, e in self._entries.items()
            if now - e.touched > self.ttl_seconds and not self._busy(sid)
        ]
        for sid in stale:
            entry = self._entries.pop(sid)
            self._locks.pop(sid, None)
            if entry.pending:
                self.store.save_messages(sid, entry.messages)
            logger.debug("Expired cached session %s", sid)

    def _entry(self, session_id: str) -> _CacheEntry:
        """Cached entry, loading from the store on miss. Holds the session lock."""
        entry = self._entries.get(session_id)
        if entry is None:
            session = self.store.get_session(session_id)
            if session is None:
                raise NotFoundError(f"Session '{session_id}' not found")
            entry = _CacheEntry(
                messages=sort_messages(session.messages),
                max_messages=session.max_messages,
                touched=self._clock(),
            )
            self._entries[session_id] = entry
        entry.touched = self._clock()
        return entry

    async def get_messages(self, session_id: str) -> list[ConversationMessage]:
        """Full chronological message list (a copy)."""
        self._expire()
        try:
            async with self._lock_for(session_id):
                return list(self._entry(session_id).messages)
        except NotFoundError:
            self._discard_lock(session_id)
            raise

    async def get_recent_messages(self, session_id: str, limit: int) -> list[ConversationMessage]:
        messages = await self.get_messages(session_id)
        return messages[-limit:] if limit > 0 else []

    async def get_budgeted_context(
        self,
        session_id: str,
        max_tokens: int,
        window: int = 10,
        exclude_prompt: str | None = None,
    ) -> list[dict]:
        """
        Token-budgeted history as role/content dicts. `exclude_prompt` drops
        the turn currently being answered so it is not sent twice.
        """
        messages = await self.get_messages(session_id)
        if exclude_prompt is not None:
            messages = drop_current_turn(messages, exclude_prompt)
        return build_context_window(messages, max_tokens, window)

    async def append_message(self, session_id: str, message: ConversationMessage) -> bool:
        """Append to the cached log. Returns True when this append flushed."""
        self._expire()
        try:
            async with self._lock_for(session_id):
                entry = self._entry(session_id)
                entry.messages.append(message)
                entry.messages = trim_messages(entry.messages, entry.max_messages)
                entry.pending += 1
                if self.policy.should_flush(entry.pending, message.role):
                    self._write(session_id, entry)
                    return True
                return False
        except NotFoundError:
            self._discard_lock(session_id)
            raise

    def _write(self, session_id: str, entry: _CacheEntry) -> None:
        self.store.save_messages(session_id, entry.messages)
        logger.debug("Flushed %d pending messages for session %s", entry.pending, session_id)
        entry.pending = 0

    async def flush(self, session_id: str) -> None:
        """Force the cached log through to the store."""
        if session_id not in self._entries:
            return
        async with self._lock_for(session_id):
            entry = self._entries.get(session_id)
            if entry is not None and entry.pending:
                self._write(session_id, entry)

    async def flush_all(self) -> None:
        for session_id in list(self._entries):
            await self.flush(session_id)

    async def evict(self, session_id: str) -> None:
        """Flush, then forget the session."""
        await self.flush(session_id)
        self._entries.pop(session_id, None)
        self._locks.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._entries)
