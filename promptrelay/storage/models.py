"""
Data models for conversations and optimization requests.
These define the shape of data flowing through the orchestrator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from uuid import UUID, uuid4

from promptrelay.errors import InvalidStrategyError, ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str) and value:
        ts = datetime.fromisoformat(value)
        return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)
    return utcnow()


class Strategy(str, Enum):
    QUALITY = "quality"
    SPEED = "speed"
    CONSENSUS = "consensus"
    COST_EFFECTIVE = "cost_effective"

    @classmethod
    def parse(cls, value: str | None) -> "Strategy":
        """Case-insensitive lookup. Raises InvalidStrategyError."""
        key = (value or "").strip().lower()
        for member in cls:
            if member.value == key:
                return member
        raise InvalidStrategyError(value or "", [m.value for m in cls])


class OptimizationType(str, Enum):
    """The built-in optimization types. config.yaml may register more."""
    CLARITY = "clarity"
    TECHNICAL = "technical"
    CREATIVE = "creative"
    ANALYTICAL = "analytical"

    @classmethod
    def resolve(cls, value: str | None, known=None) -> str:
        """
        Case-insensitive lookup against `known` type names (the built-in
        four when omitted). Returns the registered name.
        """
        names = list(known) if known is not None else [m.value for m in cls]
        key = (value or "").strip().lower()
        for name in names:
            if name.lower() == key:
                return name
        raise ValidationError(
            f"Invalid optimization type '{value}'. "
            f"Valid options: {', '.join(names)}"
        )


@dataclass
class ConversationMessage:
    """A single message in a conversation."""
    role: str = ""           # "user", "assistant", "system"
    content: str = ""
    timestamp: datetime = field(default_factory=utcnow)
    model: str | None = None

    def to_dict(self) -> dict:
        return {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "model": self.model,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ConversationMessage":
        return cls(
            role=data.get("role", ""),
            content=data.get("content", ""),
            timestamp=_parse_ts(data.get("timestamp")),
            model=data.get("model"),
        )


def sort_messages(messages: list[ConversationMessage]) -> list[ConversationMessage]:
    """Chronological order. Stable, so exact-timestamp ties keep insertion order."""
    return sorted(messages, key=lambda m: m.timestamp)


def validate_session_id(session_id) -> str:
    """Session ids are canonical 36-character UUID strings."""
    if not isinstance(session_id, str) or len(session_id) != 36:
        raise ValidationError("Invalid session id format")
    try:
        UUID(session_id)
    except ValueError:
        raise ValidationError("Invalid session id format")
    return session_id


@dataclass
class ConversationSession:
    """A conversation owned by one user. Soft-deleted via is_active."""
    session_id: str = field(default_factory=lambda: str(uuid4()))
    user_id: str = "anonymous"
    title: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    last_activity_at: datetime = field(default_factory=utcnow)
    is_active: bool = True
    messages: list[ConversationMessage] = field(default_factory=list)
    message_count: int = 0
    max_messages: int = 100

    def summary(self) -> dict:
        return {
            "session_id": self.session_id,
            "title": self.title or "",
            "created_at": self.created_at.isoformat(),
            "last_activity_at": self.last_activity_at.isoformat(),
            "message_count": self.message_count,
            "is_active": self.is_active,
        }

    def to_dict(self) -> dict:
        data = self.summary()
        data["user_id"] = self.user_id
        data["max_messages"] = self.max_messages
        data["messages"] = [m.to_dict() for m in sort_messages(self.messages)]
        return data


def trim_messages(messages: list[ConversationMessage], max_messages: int) -> list[ConversationMessage]:
    """Keep the newest max_messages, chronologically ordered."""
    ordered = sort_messages(messages)
    if max_messages > 0 and len(ordered) > max_messages:
        ordered = ordered[-max_messages:]
    return ordered


def _pick(data: dict, *keys, default=None):
    for k in keys:
        if k in data and data[k] is not None:
            return data[k]
    return default


def _flag(data: dict, *keys, default: bool) -> bool:
    value = _pick(data, *keys, default=default)
    if not isinstance(value, bool):
        raise ValidationError(f"{keys[0]} must be true or false")
    return value


def _optional_number(data: dict, *keys, cast=float):
    value = _pick(data, *keys)
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{keys[0]} must be a number")
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{keys[0]} must be a number")


@dataclass
class OptimizationRequest:
    prompt: str = ""
    strategy: str = "quality"
    optimization_type: str = "clarity"
    preferred_models: list[str] = field(default_factory=list)
    session_id: str | None = None
    enable_memory: bool = True
    context_window_size: int = 10

    @classmethod
    def from_dict(cls, data: dict) -> "OptimizationRequest":
        """Build from an HTTP body. Accepts snake_case or camelCase keys."""
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        preferred = _pick(data, "preferred_models", "preferredModels", default=[])
        if not isinstance(preferred, list):
            raise ValidationError("preferred_models must be a list of model ids")
        window = _pick(data, "context_window_size", "contextWindowSize", default=10)
        try:
            window = int(window)
        except (TypeError, ValueError):
            raise ValidationError("context_window_size must be an integer")
        if window < 1:
            raise ValidationError("context_window_size must be at least 1")
        prompt = data.get("prompt", "")
        if not isinstance(prompt, str):
            raise ValidationError("prompt must be a string")
        return cls(
            prompt=prompt,
            strategy=str(_pick(data, "strategy", default="quality")),
            optimization_type=str(
                _pick(data, "optimization_type", "optimizationType", default="clarity")
            ),
            preferred_models=[str(m) for m in preferred],
            session_id=_pick(data, "session_id", "sessionId"),
            enable_memory=_flag(data, "enable_memory", "enableMemory", default=True),
            context_window_size=window,
        )


@dataclass
class OptimizationResponse:
    original_prompt: str = ""
    optimized_prompt: str = ""
    final_response: str = ""
    models_used: list[str] = field(default_factory=list)
    strategy: str = ""
    processing_time_ms: float = 0.0
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "original_prompt": self.original_prompt,
            "optimized_prompt": self.optimized_prompt,
            "final_response": self.final_response,
            "models_used": self.models_used,
            "strategy": self.strategy,
            "processing_time_ms": round(self.processing_time_ms, 1),
            "metadata": self.metadata,
        }


@dataclass
class ChatRequest:
    """Direct chat with one named model, no rewriting or strategy."""
    message: str = ""
    model: str | None = None
    session_id: str | None = None
    temperature: float = 0.7
    max_tokens: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "ChatRequest":
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        message = data.get("message", "")
        if not isinstance(message, str):
            raise ValidationError("message must be a string")
        model = data.get("model")
        if model is not None and not isinstance(model, str):
            raise ValidationError("model must be a string")
        temperature = _optional_number(data, "temperature")
        if temperature is None:
            temperature = 0.7
        if not 0 <= temperature <= 2:
            raise ValidationError("temperature must be between 0 and 2")
        max_tokens = _optional_number(data, "max_tokens", "maxTokens", cast=int)
        if max_tokens is not None and not 1 <= max_tokens <= 4000:
            raise ValidationError("max_tokens must be between 1 and 4000")
        return cls(
            message=message,
            model=model or None,
            session_id=_pick(data, "session_id", "sessionId"),
            temperature=temperature,
            max_tokens=max_tokens,
        )


@dataclass
class ChatResponse:
    message: str = ""
    model: str = ""
    session_id: str | None = None
    session_title: str | None = None
    is_new_session: bool = False
    usage: dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "model": self.model,
            "session_id": self.session_id,
            "session_title": self.session_title,
            "is_new_session": self.is_new_session,
            "usage": self.usage,
            "timestamp": self.timestamp.isoformat(),
        }


def dedupe(items: list[str]) -> list[str]:
    """Order-preserving de-duplication."""
    seen: set[str] = set()
    out: list[str] = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            out.append(item)
    return out
