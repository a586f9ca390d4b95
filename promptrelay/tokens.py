"""
Token estimation for context budgeting.

Nothing here talks to a tokenizer: the numbers only need to be stable and
roughly proportional so the context window stays under budget.
"""

from __future__ import annotations

import math

# Fixed per-message cost for role/framing tokens
MESSAGE_OVERHEAD = 4
# Fixed per-request cost (priming tokens)
REQUEST_OVERHEAD = 10

SUMMARY_SNIPPETS = 3
SUMMARY_MAX_CHARS = 200


def estimate_tokens(text: str) -> int:
    """Weighted word/char estimate. 0 for empty text."""
    if not text:
        return 0
    words = len(text.split())
    chars = len(text)
    return math.ceil(words * 0.75 + chars * 0.25 / 4.0)


def estimate_message_tokens(role: str, content: str) -> int:
    return estimate_tokens(role) + estimate_tokens(content) + MESSAGE_OVERHEAD


def estimate_request_tokens(messages: list[dict]) -> int:
    """Estimate for a whole OpenAI-style messages array."""
    return sum(
        estimate_message_tokens(m.get("role", ""), str(m.get("content", "")))
        for m in messages
    ) + REQUEST_OVERHEAD


def summarize_messages(messages) -> str:
    """
    Collapse older turns into one line for a synthetic system message.
    Accepts ConversationMessage objects or role/content dicts.
    """
    if not messages:
        return ""

    def _fields(m):
        if isinstance(m, dict):
            return m.get("role", ""), str(m.get("content", ""))
        return m.role, m.content

    pairs = [_fields(m) for m in messages]
    user = ". ".join([c for r, c in pairs if r == "user"][:SUMMARY_SNIPPETS])
    assistant = ". ".join([c for r, c in pairs if r == "assistant"][:SUMMARY_SNIPPETS])
    if not user and not assistant:
        return ""

    return (
        f"[Earlier conversation summary - User: {user[:SUMMARY_MAX_CHARS]}... "
        f"Assistant: {assistant[:SUMMARY_MAX_CHARS]}...]"
    )
