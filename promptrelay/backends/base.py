"""
Base backend abstraction.
The LLM client talks to a backend through this interface so the transport
(and its retry policy) can be swapped or mocked without touching strategies.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

# status_code used when no HTTP response arrived (timeout, refused, DNS...)
NO_RESPONSE = 0


@dataclass
class BackendResponse:
    """Standardized response from any backend."""
    ok: bool
    status_code: int = 200
    data: dict = field(default_factory=dict)
    backend_name: str = ""
    model: str = ""
    latency_ms: float = 0.0
    error: str = ""

    @property
    def content(self) -> str:
        """Extract assistant content from response data."""
        choices = self.data.get("choices") or []
        if choices:
            message = choices[0].get("message") or {}
            return message.get("content") or ""
        return ""

    @property
    def usage(self) -> dict:
        return self.data.get("usage") or {}

    @property
    def total_tokens(self) -> int:
        return int(self.usage.get("total_tokens", 0) or 0)


class BaseBackend(abc.ABC):
    """
    Abstract base for chat-completion backends.
    """

    def __init__(self, name: str, url: str, timeout: int = 30):
        self.name = name
        self.url = url.rstrip("/")
        self.timeout = timeout

    @abc.abstractmethod
    async def forward(self, body: dict, timeout: float | None = None) -> BackendResponse:
        """
        Send a non-streaming chat completion request.
        Body is OpenAI-compatible format. Never raises for HTTP/transport
        failures; those come back as BackendResponse(ok=False).
        """
        ...

    @abc.abstractmethod
    async def health_check(self) -> bool:
        """Check if this backend is reachable and responsive."""
        ...

    @abc.abstractmethod
    async def list_models(self) -> list[str]:
        """Return list of available model names on this backend."""
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r} url={self.url!r}>"
