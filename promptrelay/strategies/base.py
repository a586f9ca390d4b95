"""
Base class for dispatch strategies.

A strategy receives a validated OptimizationRequest (session already
prepared by the orchestrator) and returns an OptimizationResponse. It picks
its model(s) from the catalog, optionally pulls the budgeted session context,
and calls upstream through LLMClient. Strategies never retry; the backend
wrapper owns that.
"""

from __future__ import annotations

import abc
import logging

from promptrelay.catalog import Model, ModelCatalog
from promptrelay.errors import NotFoundError, UpstreamError
from promptrelay.storage.models import (
    OptimizationRequest,
    OptimizationResponse,
    Strategy,
    dedupe,
)

logger = logging.getLogger(__name__)


class BaseStrategy(abc.ABC):
    name: Strategy

    def __init__(
        self,
        client,
        catalog: ModelCatalog,
        rewriter=None,
        cache=None,
        settings: dict | None = None,
        max_context_tokens: int = 2000,
    ):
        self.client = client
        self.catalog = catalog
        self.rewriter = rewriter
        self.cache = cache
        self.settings = settings or {}
        self.max_context_tokens = max_context_tokens

    @abc.abstractmethod
    async def execute(self, request: OptimizationRequest) -> OptimizationResponse:
        ...

    def _pinned(self, key: str, default: str) -> Model | None:
        """Configured model id if it is enabled."""
        return self.catalog.get(self.settings.get(key, default))

    def _require(self, model: Model | None, what: str) -> Model:
        if model is None:
            raise UpstreamError(f"No enabled model available for {what}")
        return model

    def _uses_memory(self, request: OptimizationRequest) -> bool:
        return bool(request.enable_memory and request.session_id) and self.cache is not None

    async def _context(self, request: OptimizationRequest) -> list[dict]:
        """Budgeted prior turns of the session, [] when memory is off."""
        if not self._uses_memory(request):
            return []
        try:
            return await self.cache.get_budgeted_context(
                request.session_id,
                self.max_context_tokens,
                window=request.context_window_size,
                exclude_prompt=request.prompt,
            )
        except NotFoundError:
            logger.warning("Session %s vanished before context load", request.session_id)
            return []

    def _response(
        self,
        request: OptimizationRequest,
        optimized_prompt: str,
        final_response: str,
        models_used: list[str],
        metadata: dict | None = None,
    ) -> OptimizationResponse:
        return OptimizationResponse(
            original_prompt=request.prompt,
            optimized_prompt=optimized_prompt,
            final_response=final_response,
            models_used=dedupe(models_used),
            strategy=self.name.value,
            metadata=metadata or {},
        )
