"""
cost_effective: the cheapest enabled model answers the raw prompt.
"""

from __future__ import annotations

import logging

from promptrelay.storage.models import OptimizationRequest, OptimizationResponse, Strategy
from promptrelay.strategies.base import BaseStrategy

logger = logging.getLogger(__name__)


class CostEffectiveStrategy(BaseStrategy):
    name = Strategy.COST_EFFECTIVE

    async def execute(self, request: OptimizationRequest) -> OptimizationResponse:
        model = self._require(self.catalog.cheapest(), "the cost_effective strategy")
        logger.info("Using cheapest model %s (%.2f per 1k tokens)",
                    model.id, model.cost_per_k_tokens)

        messages = await self._context(request)
        messages.append({"role": "user", "content": request.prompt})
        resp = await self.client.complete(
            model.id,
            messages,
            temperature=float(self.settings.get("temperature", 0.7)),
            max_tokens=int(self.settings.get("max_tokens", 1000)),
        )
        return self._response(
            request, request.prompt, resp.content, [model.id],
            {
                "estimated_cost": model.cost_per_k_tokens,
                "model_used": model.id,
                "total_tokens": resp.total_tokens,
            },
        )
