"""
LLMClient: the one place strategies and the rewriter go through to reach
an upstream model.

Builds the OpenAI-style body, applies the model's own timeout from the
catalog, and turns any non-ok / empty response into UpstreamError so the
callers only ever see content or an exception.
"""

from __future__ import annotations

import logging

from promptrelay.backends.base import BackendResponse
from promptrelay.backends.openai_compat import OpenAICompatibleBackend
from promptrelay.backends.retry_wrapper import RetryableBackendWrapper
from promptrelay.catalog import ModelCatalog
from promptrelay.errors import UpstreamError, ValidationError
from promptrelay.tokens import estimate_request_tokens

logger = logging.getLogger(__name__)


class LLMClient:
    def __init__(self, backend, catalog: ModelCatalog, default_timeout: int = 30):
        self.backend = backend
        self.catalog = catalog
        self.default_timeout = default_timeout

    @classmethod
    def from_config(cls, backend_cfg: dict, catalog: ModelCatalog) -> "LLMClient":
        """Wire OpenAICompatibleBackend + retry wrapper from the `backend:` block."""
        timeout = int(backend_cfg.get("timeout", 30))
        backend = OpenAICompatibleBackend(
            name=backend_cfg.get("name", "upstream"),
            url=backend_cfg.get("url") or "https://api.openai.com/v1",
            timeout=timeout,
            api_key=backend_cfg.get("api_key", ""),
        )
        wrapped = RetryableBackendWrapper(
            backend,
            max_retries=int(backend_cfg.get("max_retries", 2)),
            backoff_base=float(backend_cfg.get("backoff_base", 1.5)),
            backoff_max=float(backend_cfg.get("backoff_max", 10.0)),
        )
        return cls(wrapped, catalog, default_timeout=timeout)

    async def complete(
        self,
        model: str,
        messages: list[dict],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> BackendResponse:
        """
        Run one chat completion. Returns the response only when it carries
        non-empty content; raises UpstreamError(model=...) otherwise.
        """
        if not messages:
            raise ValidationError("Cannot send an empty message list")

        body: dict = {"model": model, "messages": messages, "stream": False}
        if temperature is not None:
            body["temperature"] = temperature
        if max_tokens is not None:
            body["max_tokens"] = max_tokens

        timeout = self.catalog.timeout_for(model, self.default_timeout)
        logger.debug("Sending %d messages (~%d tokens) to '%s'",
                     len(messages), estimate_request_tokens(messages), model)
        response = await self.backend.forward(body, timeout=timeout)

        if not response.ok:
            logger.warning("Model '%s' failed (%d) after %.0fms: %s",
                           model, response.status_code, response.latency_ms, response.error)
            raise UpstreamError(
                f"Model '{model}' request failed: {response.error or 'unknown error'}",
                model=model,
                status=response.status_code,
            )

        if not response.content.strip():
            logger.warning("Model '%s' returned empty content", model)
            raise UpstreamError(
                f"Model '{model}' returned no content",
                model=model,
                status=response.status_code,
            )

        logger.info("Model '%s' answered in %.0fms (%d tokens)",
                    model, response.latency_ms, response.total_tokens)
        return response

    async def upstream_status(self) -> dict:
        """Reachability of the upstream and which catalog models it serves."""
        reachable = await self.backend.health_check()
        served = await self.backend.list_models() if reachable else []
        enabled = [m.id for m in self.catalog.enabled()]
        return {
            "reachable": reachable,
            "served_models": served,
            "missing_models": [m for m in enabled if served and m not in served],
        }
