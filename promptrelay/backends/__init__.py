"""
Upstream LLM access for promptrelay.
One OpenAI-compatible gateway, retried with backoff, fronted by LLMClient.
"""
from promptrelay.backends.base import BaseBackend, BackendResponse
from promptrelay.backends.openai_compat import OpenAICompatibleBackend
from promptrelay.backends.retry_wrapper import RetryableBackendWrapper
from promptrelay.backends.client import LLMClient

__all__ = [
    "BaseBackend",
    "BackendResponse",
    "OpenAICompatibleBackend",
    "RetryableBackendWrapper",
    "LLMClient",
]
