"""
Session persistence: data models and the SessionStore implementations.
"""
from promptrelay.storage.models import (
    ConversationMessage,
    ConversationSession,
    OptimizationRequest,
    OptimizationResponse,
    OptimizationType,
    Strategy,
)
from promptrelay.storage.session_store import (
    InMemorySessionStore,
    SessionStore,
    make_session_store,
)
from promptrelay.storage.sqlite_store import SQLiteSessionStore

__all__ = [
    "ConversationMessage",
    "ConversationSession",
    "OptimizationRequest",
    "OptimizationResponse",
    "OptimizationType",
    "Strategy",
    "SessionStore",
    "InMemorySessionStore",
    "SQLiteSessionStore",
    "make_session_store",
]
