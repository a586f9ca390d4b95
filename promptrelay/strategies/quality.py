"""
quality: rewrite the prompt with a small model, answer with an advanced one.

    strategies:
      quality:
        rewrite_model: gpt-4o-mini
        response_model: gpt-4o
        temperature: 0.7
"""

from __future__ import annotations

import logging

from promptrelay.catalog import Model, ModelClass
from promptrelay.storage.models import OptimizationRequest, OptimizationResponse, Strategy
from promptrelay.strategies.base import BaseStrategy

logger = logging.getLogger(__name__)


class QualityStrategy(BaseStrategy):
    name = Strategy.QUALITY

    def response_model(self, preferred: list[str]) -> Model:
        """Preferred advanced → pinned default → highest-priority advanced."""
        model = self.catalog.first_preferred(preferred, ModelClass.ADVANCED)
        if model is None:
            model = self._pinned("response_model", "gpt-4o")
        if model is None:
            advanced = self.catalog.enabled(ModelClass.ADVANCED)
            if advanced:
                model = max(advanced, key=lambda m: m.priority)
        return self._require(model, "the quality strategy")

    async def _rewrite(self, request: OptimizationRequest, rewrite_model: str) -> str:
        if self.rewriter is None or not self.catalog.is_enabled(rewrite_model):
            return request.prompt
        if self._uses_memory(request):
            return await self.rewriter.rewrite_with_session(
                request.prompt, request.optimization_type, rewrite_model,
                request.session_id, self.cache,
            )
        return await self.rewriter.rewrite(
            request.prompt, request.optimization_type, rewrite_model
        )

    async def execute(self, request: OptimizationRequest) -> OptimizationResponse:
        responder = self.response_model(request.preferred_models)
        rewrite_model = self.settings.get("rewrite_model", "gpt-4o-mini")

        optimized = await self._rewrite(request, rewrite_model)
        rewritten = optimized != request.prompt
        if rewritten:
            logger.info("Quality: prompt rewritten by %s", rewrite_model)

        messages = await self._context(request)
        messages.append({"role": "user", "content": optimized})
        resp = await self.client.complete(
            responder.id,
            messages,
            temperature=float(self.settings.get("temperature", 0.7)),
            max_tokens=self.settings.get("max_tokens"),
        )

        models = ([rewrite_model] if rewritten else []) + [responder.id]
        return self._response(
            request,
            optimized,
            resp.content,
            models,
            {
                "optimization_type": request.optimization_type,
                "prompt_rewritten": rewritten,
                "total_tokens": resp.total_tokens,
            },
        )
